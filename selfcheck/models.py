import json
import string
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from eth_utils import is_address, is_checksum_address, to_checksum_address
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    StrictStr,
    ValidationError,
    field_validator,
)

from selfcheck.errors import InputValidationError, TaskConfigError

UINT256_MAX = 2**256 - 1

REQUIRED_FIELDS = ("boardId", "taskId", "address", "proof", "chainName")


def is_valid_address(value: Any) -> bool:
    if not isinstance(value, str) or not is_address(value):
        return False
    # Mixed case must carry a valid EIP-55 checksum
    digits = value[2:]
    return digits == digits.lower() or digits == digits.upper() or is_checksum_address(value)


def parse_uint256(value: Any) -> int:
    """Accept ids the way the web client sends them: JSON numbers or decimal/0x strings."""
    if isinstance(value, bool):
        raise ValueError("must be an integer")
    if isinstance(value, int):
        number = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValueError("must be an integer")
        number = int(value)
    elif isinstance(value, str):
        text = value.strip()
        if text[:2].lower() == "0x" and text[2:] and all(c in string.hexdigits for c in text[2:]):
            number = int(text, 16)
        elif text.isdigit() and text.isascii():
            number = int(text)
        else:
            raise ValueError("must be an integer")
    else:
        raise ValueError("must be an integer")
    if not 0 <= number <= UINT256_MAX:
        raise ValueError("out of uint256 range")
    return number


class SelfCheckRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    board_id: int = Field(alias="boardId")
    task_id: int = Field(alias="taskId")
    address: str
    proof: StrictStr
    chain_name: StrictStr = Field(alias="chainName")

    @field_validator("board_id", "task_id", mode="before")
    @classmethod
    def _uint256(cls, value):
        return parse_uint256(value)

    @field_validator("address", mode="before")
    @classmethod
    def _account(cls, value):
        if not is_valid_address(value):
            raise ValueError("must be a 20-byte hex address")
        return to_checksum_address(value)

    @classmethod
    def from_payload(cls, payload: Any) -> "SelfCheckRequest":
        if not isinstance(payload, dict):
            raise InputValidationError("Request body must be a JSON object")
        missing = [name for name in REQUIRED_FIELDS if payload.get(name) is None or payload.get(name) == ""]
        if missing:
            raise InputValidationError("Missing required parameters")
        try:
            return cls.model_validate({name: payload[name] for name in REQUIRED_FIELDS})
        except ValidationError as exc:
            field = exc.errors()[0]["loc"][0]
            raise InputValidationError(f"Invalid parameter: {field}") from exc


class TaskConfig(BaseModel):
    """Recognised keys of a task's free-form JSON config. Unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    ai_review: bool = Field(False, alias="aiReview")
    task_type: List[str] = Field(default_factory=list, alias="taskType")
    ai_review_prompt: Optional[str] = Field(None, alias="aiReviewPrompt")

    _raw: Dict[str, Any] = PrivateAttr(default_factory=dict)

    @field_validator("ai_review", mode="before")
    @classmethod
    def _truthy(cls, value):
        # Only false, 0, null and "" switch review off; "false", [] and {} keep it on
        if value is None or value is False or value == "":
            return False
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value != 0
        return True

    @field_validator("task_type", mode="before")
    @classmethod
    def _type_list(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value else []
        if isinstance(value, (list, tuple)):
            return [str(item) for item in value if item not in (None, "")]
        return []

    @field_validator("ai_review_prompt", mode="before")
    @classmethod
    def _prompt(cls, value):
        if value is None or isinstance(value, str):
            return value or None
        return str(value)

    @property
    def raw(self) -> Dict[str, Any]:
        return dict(self._raw)

    @classmethod
    def from_json(cls, text: Optional[str]) -> "TaskConfig":
        if not text or not text.strip():
            data: Any = {}
        else:
            try:
                data = json.loads(text)
            except json.JSONDecodeError as exc:
                raise TaskConfigError(f"Task config is not valid JSON: {exc}") from exc
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise TaskConfigError(f"Task config must be a JSON object, got {type(data).__name__}")
        config = cls.model_validate(data)
        config._raw = data
        return config


class TaskSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    allow_self_check: bool
    description: str = ""
    config: str = ""

    def task_config(self) -> TaskConfig:
        return TaskConfig.from_json(self.config)


class ReviewRequest(BaseModel):
    task_config: Dict[str, Any]
    proof_types: List[str] = []
    proof_data: Any
    task_description: str = ""
    review_prompt: Optional[str] = None


class ReviewOutcome(BaseModel):
    approved: bool
    result_payload: str


@dataclass(frozen=True)
class Attestation:
    claim_hash: bytes
    signature: bytes
    result_payload: str

    @property
    def claim_hash_hex(self) -> str:
        return "0x" + self.claim_hash.hex()

    @property
    def signature_hex(self) -> str:
        return "0x" + self.signature.hex()


class SelfCheckResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    signature: str
    check_data: str = Field(alias="checkData")

    @classmethod
    def from_attestation(cls, attestation: Attestation) -> "SelfCheckResponse":
        return cls(signature=attestation.signature_hex, check_data=attestation.result_payload)


class ErrorResponse(BaseModel):
    error: str
