"""Claim encoding and signing.

The claim is ABI-encoded as ``(uint256 boardId, uint256 taskId, address
claimant, string checkData)``, hashed with Keccak-256 and signed as an EIP-191
personal message over the 32 raw hash bytes. BountyBoard recovers the signer
from exactly this layout: changing the type list or the field order still
yields a valid-looking signature that the contract will reject.
"""
import logging
import string
from typing import Optional

from eth_abi import encode
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import keccak

from selfcheck.errors import InvalidSignerConfiguration
from selfcheck.models import Attestation

logger = logging.getLogger(__name__)

CLAIM_TYPES = ["uint256", "uint256", "address", "string"]
PRIVATE_KEY_LENGTH = 66


def encode_claim(board_id: int, task_id: int, claimant: str, check_data: str) -> bytes:
    return encode(CLAIM_TYPES, [board_id, task_id, claimant, check_data])


def claim_hash(board_id: int, task_id: int, claimant: str, check_data: str) -> bytes:
    return keccak(encode_claim(board_id, task_id, claimant, check_data))


def validate_private_key(private_key: Optional[str]) -> str:
    if not private_key:
        raise InvalidSignerConfiguration("SIGNER_ADDRESS_PRIVATE_KEY is not set")
    if not private_key.startswith("0x") or len(private_key) != PRIVATE_KEY_LENGTH:
        raise InvalidSignerConfiguration("Invalid SIGNER_ADDRESS_PRIVATE_KEY format")
    if not all(c in string.hexdigits for c in private_key[2:]):
        raise InvalidSignerConfiguration("Invalid SIGNER_ADDRESS_PRIVATE_KEY format")
    return private_key


class AttestationSigner:
    def __init__(self, private_key: Optional[str]):
        key = validate_private_key(private_key)
        try:
            self._account = Account.from_key(key)
        except Exception as exc:
            # Zero or out-of-range keys
            raise InvalidSignerConfiguration("SIGNER_ADDRESS_PRIVATE_KEY is not a valid secp256k1 key") from exc

    def __repr__(self) -> str:
        return f"AttestationSigner(address={self.address})"

    @property
    def address(self) -> str:
        return self._account.address

    def sign(self, board_id: int, task_id: int, claimant: str, check_data: str) -> Attestation:
        digest = claim_hash(board_id, task_id, claimant, check_data)
        signed = self._account.sign_message(encode_defunct(primitive=digest))
        logger.info(
            "Claim signed",
            extra={"board_id": board_id, "task_id": task_id, "claimant": claimant, "claim_hash": "0x" + digest.hex()},
        )
        return Attestation(claim_hash=digest, signature=bytes(signed.signature), result_payload=check_data)
