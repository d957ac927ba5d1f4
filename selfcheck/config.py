"""Service configuration loaded from the environment and a local .env file."""
from typing import Annotated, List, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    # Never logged or returned
    signer_private_key: Optional[SecretStr] = Field(None, validation_alias="SIGNER_ADDRESS_PRIVATE_KEY")

    contract_addresses_file: str = Field("contract-address.json", validation_alias="CONTRACT_ADDRESSES_FILE")
    abi_path: Optional[str] = Field(None, validation_alias="BOUNTY_BOARD_ABI_PATH")
    anvil_rpc_url: Optional[str] = Field(None, validation_alias="ANVIL_RPC_URL")
    linea_sepolia_rpc_url: Optional[str] = Field(None, validation_alias="LINEA_SEPOLIA_RPC_URL")
    chain_read_timeout: float = Field(15.0, gt=0, validation_alias="CHAIN_READ_TIMEOUT")

    ai_review_api_key: Optional[SecretStr] = Field(None, validation_alias="AI_REVIEW_API_KEY")
    ai_review_base_url: str = Field("https://api.openai.com/v1", validation_alias="AI_REVIEW_BASE_URL")
    ai_review_model: str = Field("gpt-4o-mini", validation_alias="AI_REVIEW_MODEL")
    review_timeout: float = Field(60.0, gt=0, validation_alias="REVIEW_TIMEOUT")

    allowed_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["*"], validation_alias="ALLOWED_ORIGINS"
    )
    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
    log_file: Optional[str] = Field(None, validation_alias="LOG_FILE")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _split_origins(cls, value):
        if isinstance(value, str):
            value = [item.strip() for item in value.split(",") if item.strip()]
        return value or ["*"]
