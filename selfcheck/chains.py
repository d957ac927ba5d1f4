import json
import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional

from eth_utils import to_checksum_address

from selfcheck.config import Settings
from selfcheck.errors import ContractNotDeployed, UnsupportedNetwork
from selfcheck.models import is_valid_address

logger = logging.getLogger(__name__)

CONTRACT_NAME = "BountyBoard"


@dataclass(frozen=True)
class Chain:
    name: str
    chain_id: int
    rpc_url: str


LINEA_SEPOLIA = Chain(name="Linea Sepolia Testnet", chain_id=59141, rpc_url="https://rpc.sepolia.linea.build")
ANVIL = Chain(name="Anvil", chain_id=31337, rpc_url="http://127.0.0.1:8545")


class ChainRegistry:
    def __init__(self, chains: Mapping[str, Chain], contracts: Mapping[str, str]):
        self._chains = MappingProxyType(dict(chains))
        normalized = {}
        for name, address in contracts.items():
            if not is_valid_address(address):
                raise ValueError(f"{CONTRACT_NAME} address for {name!r} must be a 0x-prefixed 20-byte address")
            normalized[name] = to_checksum_address(address)
        self._contracts = MappingProxyType(normalized)

    def __iter__(self) -> Iterator[Chain]:
        return iter(self._chains.values())

    def resolve(self, name: str) -> Chain:
        chain = self._chains.get(name)
        if chain is None:
            raise UnsupportedNetwork(name)
        return chain

    def contract_address(self, chain: Chain) -> str:
        address = self._contracts.get(chain.name)
        if address is None:
            raise ContractNotDeployed(chain.name)
        return address

    def is_deployed(self, chain: Chain) -> bool:
        return chain.name in self._contracts

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChainRegistry":
        chains = {
            LINEA_SEPOLIA.name: Chain(
                name=LINEA_SEPOLIA.name,
                chain_id=LINEA_SEPOLIA.chain_id,
                rpc_url=settings.linea_sepolia_rpc_url or LINEA_SEPOLIA.rpc_url,
            ),
            ANVIL.name: Chain(
                name=ANVIL.name,
                chain_id=ANVIL.chain_id,
                rpc_url=settings.anvil_rpc_url or ANVIL.rpc_url,
            ),
        }
        contracts = load_contract_addresses(settings.contract_addresses_file)
        unknown = sorted(set(contracts) - set(chains))
        if unknown:
            logger.warning("Ignoring contract addresses for unsupported chains", extra={"chains": unknown})
        registry = cls(chains, {name: addr for name, addr in contracts.items() if name in chains})
        logger.info(
            "Chain registry loaded",
            extra={"chains": list(chains), "deployed": [c.name for c in registry if registry.is_deployed(c)]},
        )
        return registry


def load_contract_addresses(path: Optional[str]) -> Dict[str, str]:
    """Read ``{"BountyBoard": {"<chain name>": "0x..."}}`` from disk."""
    if not path:
        return {}
    file_path = Path(path)
    if not file_path.exists():
        logger.warning("Contract address file not found, no deployments configured", extra={"path": str(file_path)})
        return {}
    data = json.loads(file_path.read_text(encoding="utf-8") or "{}")
    if not isinstance(data, dict):
        raise ValueError("contract address file must hold a JSON object")
    deployments = data.get(CONTRACT_NAME, {})
    if not isinstance(deployments, dict):
        raise ValueError(f"{CONTRACT_NAME} entry must map chain names to addresses")
    return dict(deployments)
