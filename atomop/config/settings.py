"""Application settings using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from web3 import Web3


class Settings(BaseSettings):
    """Engine configuration with environment variable overrides."""

    model_config = SettingsConfigDict(
        env_prefix="ATOMOP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Chain access
    chain_id: int = Field(default=1, description="Chain ID used when signing transactions")
    rpc_url: str | None = Field(
        default=None, description="JSON-RPC endpoint (required for on-chain collaborators)"
    )
    private_key: str | None = Field(
        default=None, description="Signing key for batch submission (NEVER commit or print)"
    )
    rpc_timeout_seconds: float = Field(default=20.0, description="RPC request timeout (seconds)")
    rpc_max_attempts: int = Field(
        default=3, description="Attempts for read-only RPC calls (writes are never retried)"
    )

    # Trusted counter-parties
    position_manager_address: str | None = Field(
        default=None,
        description="Position manager: batch processor and the only trusted lifecycle notifier",
    )
    flash_pool_address: str | None = Field(
        default=None, description="Lending pool: the only trusted flash-callback authority"
    )
    receiver_address: str | None = Field(
        default=None, description="Address this process's flash orchestrator acts as"
    )

    # Batches
    default_deadline_seconds: int = Field(
        default=300, description="Deadline offset applied by the batch planner (seconds)"
    )

    # Flash operations
    flash_referral_code: int = Field(default=0, description="Referral code passed to the pool")

    # Ledger
    ledger_modify_policy: Literal["clear", "reconcile"] = Field(
        default="clear",
        description=(
            "Handling of non-positive modify notifications: 'clear' drops tracking, "
            "'reconcile' re-reads current liquidity from the position manager"
        ),
    )
    db_url: str = Field(default="sqlite:///./atomop.db", description="Database connection URL")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    log_format: Literal["json", "console"] = Field(
        default="json", description="Log output format"
    )

    @field_validator("position_manager_address", "flash_pool_address", "receiver_address")
    @classmethod
    def validate_address(cls, v: str | None) -> str | None:
        """Normalize addresses to checksum form."""
        if v is None or v == "":
            return None
        if not Web3.is_address(v):
            raise ValueError(f"Not a valid address: {v}")
        return Web3.to_checksum_address(v)

    @field_validator("default_deadline_seconds")
    @classmethod
    def validate_deadline(cls, v: int) -> int:
        """Deadline offset must leave time for inclusion."""
        if v < 1:
            raise ValueError(f"Deadline offset must be at least 1 second, got {v}")
        return v

    @field_validator("rpc_max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"rpc_max_attempts must be >= 1, got {v}")
        return v

    @field_validator("flash_referral_code")
    @classmethod
    def validate_referral(cls, v: int) -> int:
        """Referral codes are uint16 on-chain."""
        if not 0 <= v <= 0xFFFF:
            raise ValueError(f"Referral code must fit in uint16, got {v}")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
