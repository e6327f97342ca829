"""Runtime configuration read from environment variables.

Settings are built once per process by get_settings(); tests call
get_settings.cache_clear() (via reset_services) after changing the
environment.
"""

import logging
from decimal import Decimal
from functools import lru_cache
from typing import Annotated, Any

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)

# Processor notification origins (CIDR)
DEFAULT_AUTHORIZED_NETWORKS = (
    "181.49.176.18/32",
    "181.49.176.19/32",
    "181.49.50.0/24",
    "190.131.241.0/24",
)

# Comma-separated in the environment
CsvList = Annotated[list[str], NoDecode]


class Settings(BaseSettings):
    """Payment reconciliation settings."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
        populate_by_name=True,
    )

    environment: str = Field(default="dev", description="dev, staging or production")

    # Processor
    epayco_test_mode: bool = False
    sandbox_skip_signature: bool = Field(
        default=False,
        validation_alias=AliasChoices("EPAYCO_SANDBOX_SKIP_SIGNATURE", "sandbox_skip_signature"),
        description="Skip webhook signatures; honored only together with epayco_test_mode",
    )
    validate_ip: bool = True
    authorized_networks: CsvList = Field(
        default_factory=lambda: list(DEFAULT_AUTHORIZED_NETWORKS),
        validation_alias=AliasChoices("EPAYCO_AUTHORIZED_NETWORKS", "authorized_networks"),
    )
    epayco_cust_id: str | None = None
    epayco_public_key: str | None = None
    epayco_private_key: str | None = Field(default=None, repr=False)
    epayco_apify_url: str = "https://apify.epayco.co"
    epayco_validation_url: str = "https://secure.epayco.co/validation/v1/reference"
    epayco_response_url: str | None = None
    epayco_confirmation_url: str | None = None
    merchant_name: str = "Rasi"

    # Pricing
    checkout_currency: str = "COP"
    rate_api_url: str = "https://api.exchangerate-api.com/v4/latest/USD"
    default_usd_cop_rate: Decimal | None = Field(
        default=Decimal("4200"),
        description="Last-resort rate; blank or 'none' disables the fallback",
    )

    # Fulfillment
    saas_api_url: str | None = None
    saas_frontend_url: str | None = None
    refund_on_failed_steps: CsvList = Field(default_factory=list)

    # HTTP
    cors_origins: CsvList = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"]
    )

    @field_validator("authorized_networks", "refund_on_failed_steps", "cors_origins", mode="before")
    @classmethod
    def _split_csv(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("default_usd_cop_rate", mode="before")
    @classmethod
    def _blank_rate_disables(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().lower() in ("", "none"):
            return None
        return value

    @model_validator(mode="after")
    def _skip_signature_needs_test_mode(self) -> "Settings":
        if self.sandbox_skip_signature and not self.epayco_test_mode:
            logger.warning(
                "EPAYCO_SANDBOX_SKIP_SIGNATURE ignored: EPAYCO_TEST_MODE is not enabled"
            )
            self.sandbox_skip_signature = False
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("prod", "production")

    @property
    def signature_validation_enabled(self) -> bool:
        """Whether webhook signatures are verified.

        Only an explicit sandbox flag in test mode turns validation off.
        """
        return not (self.epayco_test_mode and self.sandbox_skip_signature)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        return cls()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the process-wide Settings instance."""
    return Settings.from_env()
