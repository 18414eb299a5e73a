"""
Application configuration using Pydantic Settings.

All environment variables are accessed through this config object.
Never use os.getenv() directly in business logic.
"""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Mint Configuration
    MINT_URL: str = Field(
        default="https://testnut.cashu.space",
        description="Base URL of the mint the wallet is bound to",
    )
    WALLET_UNIT: str = Field(
        default="sat",
        description="Unit used for quotes and tokens",
    )
    USE_MOCK_MINT: bool = Field(
        default=True,
        description="Use the in-process simulated mint instead of a remote one",
    )
    MOCK_MINT_AUTO_PAY: bool = Field(
        default=False,
        description="Simulated mint marks quotes paid on their first check",
    )
    MOCK_MINT_INPUT_FEE_PPK: int = Field(
        default=0,
        ge=0,
        description="Simulated keyset input fee in parts per thousand per proof",
    )

    # Storage Configuration
    WALLET_DB_PATH: str = Field(
        default="wallet.sqlite",
        description="Path of the SQLite ledger file",
    )

    # Quote Monitor Configuration
    QUOTE_CHECK_INTERVAL_SECONDS: float = Field(
        default=5.0,
        gt=0,
        description="Seconds between quote monitor ticks",
    )
    QUOTE_MAX_CONCURRENT_CHECKS: int = Field(
        default=5,
        ge=1,
        description="Maximum quotes checked per monitor tick",
    )

    # Payment Configuration
    MELT_CONFIRM_ATTEMPTS: int = Field(
        default=1,
        ge=0,
        description="Settlement re-checks after paying an invoice",
    )
    MELT_CONFIRM_INTERVAL_SECONDS: float = Field(
        default=3.0,
        ge=0,
        description="Delay before each settlement re-check",
    )
    MINT_POLL_ATTEMPTS: int = Field(
        default=60,
        ge=1,
        description="Payment polls made by the blocking mint flow",
    )
    MINT_POLL_INTERVAL_SECONDS: float = Field(
        default=5.0,
        ge=0,
        description="Delay between payment polls in the blocking mint flow",
    )

    # LNURL-pay (LUD-06) descriptor
    LUD06_CALLBACK: str = Field(default="", description="LNURL-pay callback URL")
    LUD06_MAX_SENDABLE: int = Field(
        default=1000000000,
        description="Maximum sendable amount in millisats",
    )
    LUD06_MIN_SENDABLE: int = Field(
        default=1000,
        description="Minimum sendable amount in millisats",
    )
    LUD06_METADATA: str = Field(default="", description="LNURL-pay metadata string")
    LUD06_TAG: str = Field(default="payRequest", description="LNURL tag")

    # Application Configuration
    ALLOWED_ORIGINS: List[str] = Field(
        default=["http://localhost:5173", "http://localhost:3000"],
        description="CORS allowed origins",
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Root logging level",
    )


# Global settings instance
settings = Settings()
