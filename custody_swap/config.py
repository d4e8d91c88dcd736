"""
Configuration Module for the custody swap runner

This module provides configuration management using Pydantic v2 BaseSettings.
All settings are loaded from environment variables (or a .env file) with
validation and type safety. Nothing is exposed as a runtime CLI argument.

Usage:
    from custody_swap.config import get_settings
    settings = get_settings()
    print(settings.custody.vault_id)
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from pydantic import (
    AnyHttpUrl,
    Field,
    SecretStr,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import InvalidAddressError
from .models import BroadcastMode
from .validators import validate_solana_address


# =============================================================================
# ENUMS
# =============================================================================

class LogLevel(str, Enum):
    """Logging level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# =============================================================================
# BASE CONFIGURATION
# =============================================================================

class BaseConfig(BaseSettings):
    """Base configuration with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )


def _strip_url(v: Any) -> str:
    return str(v).rstrip("/")


# =============================================================================
# SOLANA RPC CONFIGURATION
# =============================================================================

class SolanaRPCSettings(BaseConfig):
    """Solana RPC connection configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SOLANA_",
        env_file=".env",
        extra="ignore",
    )

    rpc_url: AnyHttpUrl = Field(
        default="https://api.mainnet-beta.solana.com",
        description="Ledger RPC endpoint URL",
    )

    commitment: str = Field(
        default="confirmed",
        pattern="^(processed|confirmed|finalized)$",
        description="Commitment used for blockhash and health reads",
    )

    timeout: int = Field(
        default=30,
        ge=5,
        le=120,
        description="RPC request timeout in seconds",
    )

    @property
    def url(self) -> str:
        return _strip_url(self.rpc_url)


# =============================================================================
# HTTP POOL CONFIGURATION
# =============================================================================

class HttpSettings(BaseConfig):
    """Pooled outbound HTTP configuration, fixed at construction."""

    model_config = SettingsConfigDict(
        env_prefix="HTTP_",
        env_file=".env",
        extra="ignore",
    )

    max_connections: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Total socket limit for the shared session",
    )

    max_connections_per_host: int = Field(
        default=10,
        ge=0,
        le=1000,
        description="Per-host socket limit (0 = unlimited)",
    )

    keepalive_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Idle keep-alive timeout in seconds",
    )

    timeout: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Total request timeout in seconds",
    )


# =============================================================================
# CUSTODY CONFIGURATION
# =============================================================================

class CustodySettings(BaseConfig):
    """Custody signing-and-broadcast service configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CUSTODY_",
        env_file=".env",
        extra="ignore",
    )

    api_token: SecretStr = Field(
        ...,
        description="Bearer token for the custody API",
        min_length=1,
    )

    vault_id: str = Field(
        ...,
        min_length=1,
        description="Custody vault identifier",
    )

    vault_address: str = Field(
        ...,
        description="Solana address of the custody vault (fee payer)",
    )

    private_key_path: Path = Field(
        default=Path("secret/private.pem"),
        description="PEM file holding the API signer private key",
    )

    api_base_url: AnyHttpUrl = Field(
        default="https://api.fordefi.com",
        description="Custody API base URL",
    )

    create_path: str = Field(
        default="/api/v1/transactions/create-and-wait",
        pattern="^/",
        description="Endpoint path for create-and-wait submissions",
    )

    transactions_path: str = Field(
        default="/api/v1/transactions",
        pattern="^/",
        description="Endpoint path for transaction lookups",
    )

    chain: str = Field(
        default="solana_mainnet",
        description="Custody chain identifier",
    )

    @field_validator("vault_address")
    @classmethod
    def validate_vault_address(cls, v: str) -> str:
        try:
            return validate_solana_address(v, "vault_address")
        except InvalidAddressError as e:
            raise ValueError(e.message) from e

    @property
    def base_url(self) -> str:
        return _strip_url(self.api_base_url)


# =============================================================================
# SWAP CONFIGURATION
# =============================================================================

class SwapSettings(BaseConfig):
    """Fixed swap parameters for the whole run."""

    model_config = SettingsConfigDict(
        env_prefix="SWAP_",
        env_file=".env",
        extra="ignore",
    )

    pool_address: str = Field(
        default="Czfq3xZZDmsdGdUyrNLtRhGc47cXcZtLG4crryfu44zE",  # SOL/USDC whirlpool
        description="Liquidity pool to swap against",
    )

    input_mint: str = Field(
        default="So11111111111111111111111111111111111111112",
        description="Mint of the input token",
    )

    amount: int = Field(
        default=1000,
        gt=0,
        le=2**64 - 1,
        description="Input amount in the smallest unit (lamports for SOL)",
    )

    broadcast_mode: BroadcastMode = Field(
        default=BroadcastMode.DIRECT,
        description="direct = custody broadcasts, relay = forward to Jito",
    )

    slippage_bps: int = Field(
        default=100,
        ge=0,
        le=10000,
        description="Slippage tolerance in basis points",
    )

    quote_api_url: AnyHttpUrl = Field(
        default="http://localhost:3000",
        description="Base URL of the swap quoting/instruction service",
    )

    local_signer_key: Optional[SecretStr] = Field(
        default=None,
        description="Optional base58 keypair for a locally held second signer",
    )

    @field_validator("pool_address", "input_mint")
    @classmethod
    def validate_addresses(cls, v: str, info: Any) -> str:
        try:
            return validate_solana_address(v, info.field_name)
        except InvalidAddressError as e:
            raise ValueError(e.message) from e

    @property
    def quote_url(self) -> str:
        return _strip_url(self.quote_api_url)


# =============================================================================
# RELAY CONFIGURATION
# =============================================================================

class RelaySettings(BaseConfig):
    """Low-latency relay (Jito block engine) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        env_file=".env",
        extra="ignore",
    )

    block_engine_url: AnyHttpUrl = Field(
        default="https://mainnet.block-engine.jito.wtf",
        description="Block engine base URL",
    )

    tip_lamports: int = Field(
        default=1000,
        ge=1,
        le=100_000_000,
        description="Tip paid to the selected tip account, in lamports",
    )

    @property
    def url(self) -> str:
        return _strip_url(self.block_engine_url)


# =============================================================================
# BATCH CONFIGURATION
# =============================================================================

class BatchSettings(BaseConfig):
    """Batch orchestration parameters."""

    model_config = SettingsConfigDict(
        env_prefix="BATCH_",
        env_file=".env",
        extra="ignore",
    )

    iterations: int = Field(default=10, ge=1, le=10_000)
    batch_size: int = Field(default=3, ge=1, le=1000)
    delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=3600.0,
        description="Pause between iterations (not after the last)",
    )


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

class LoggingSettings(BaseConfig):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore",
    )

    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )

    directory: Path = Field(
        default=Path("logs"),
        description="Directory for rotating application logs",
    )

    file_name: str = Field(
        default="custody_swap.log",
        description="Application log file name",
    )

    max_size_mb: int = Field(
        default=10,
        ge=1,
        le=1024,
        description="Max log file size in MB",
    )

    backup_count: int = Field(
        default=5,
        ge=0,
        le=100,
        description="Number of backup log files",
    )

    run_log_path: Path = Field(
        default=Path("swap_execution.log"),
        description="Append-only run log with one line per pipeline event",
    )


# =============================================================================
# MAIN SETTINGS
# =============================================================================

class Settings(BaseConfig):
    """
    Main application settings aggregating all configuration sections.

    Usage:
        settings = get_settings()
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field(default="Custody Swap Runner")
    app_version: str = Field(default="1.0.0")

    solana: SolanaRPCSettings = Field(default_factory=SolanaRPCSettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    custody: CustodySettings = Field(default_factory=CustodySettings)
    swap: SwapSettings = Field(default_factory=SwapSettings)
    relay: RelaySettings = Field(default_factory=RelaySettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def mask_secrets(self) -> dict[str, Any]:
        """
        Return settings dict with sensitive values masked.
        Safe for logging and debugging.
        """
        def mask_value(v: Any) -> Any:
            if isinstance(v, SecretStr):
                secret = v.get_secret_value()
                if len(secret) > 8:
                    return f"{secret[:4]}...{secret[-4:]}"
                return "***"
            elif isinstance(v, dict):
                return {k: mask_value(val) for k, val in v.items()}
            elif isinstance(v, (list, set, tuple)):
                return type(v)(mask_value(item) for item in v)
            return v

        return mask_value(self.model_dump())


# =============================================================================
# SINGLETON & CACHING
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    Returns:
        Settings: Cached settings singleton
    """
    return Settings()


def reload_settings() -> Settings:
    """Clear settings cache and reload from environment."""
    get_settings.cache_clear()
    return get_settings()


__all__ = [
    "Settings",
    "SolanaRPCSettings",
    "HttpSettings",
    "CustodySettings",
    "SwapSettings",
    "RelaySettings",
    "BatchSettings",
    "LoggingSettings",
    "LogLevel",
    "get_settings",
    "reload_settings",
]
