"""
Infrastructure Layer: Configuration Adapter
"""
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from bazaar.domain import (
    DEFAULT_CARAT_SIZES,
    DEFAULT_DENOMINATIONS,
    DEFAULT_GEM_BASE_VALUES,
    Denomination,
)


class DenominationSetting(BaseModel):
    """One configured coin"""
    name: str = Field(..., min_length=1)
    value: Decimal = Field(..., gt=0)
    weight: Decimal = Field(Decimal("0"), ge=0)

    def to_domain(self) -> Denomination:
        return Denomination(name=self.name, value=self.value, weight=self.weight)


def _default_denominations() -> List[DenominationSetting]:
    return [DenominationSetting(name=d.name, value=d.value, weight=d.weight) for d in DEFAULT_DENOMINATIONS]


class Settings(BaseSettings):
    """
    Global application settings loaded from .env file and environment variables.
    Follows 12-factor app methodology.
    """

    # Currency
    use_module_currency: bool = Field(True, alias="USE_MODULE_CURRENCY")
    currency_name: str = Field("coins", alias="CURRENCY_NAME")
    currency_symbol: str = Field("$", alias="CURRENCY_SYMBOL")
    currency_thousands_separator: str = Field(",", alias="CURRENCY_THOUSANDS_SEPARATOR")
    currency_decimal_separator: str = Field(".", alias="CURRENCY_DECIMAL_SEPARATOR")
    currency_denominations: List[DenominationSetting] = Field(
        default_factory=_default_denominations, alias="CURRENCY_DENOMINATIONS"
    )

    # Trading
    require_gm_approval: bool = Field(True, alias="REQUIRE_GM_APPROVAL")
    automatic_sell_percentage: int = Field(50, ge=0, le=100, alias="AUTOMATIC_SELL_PERCENTAGE")

    # Gems
    gem_base_values: Dict[str, Decimal] = Field(
        default_factory=lambda: {k: Decimal(v) for k, v in DEFAULT_GEM_BASE_VALUES.items()},
        alias="GEM_BASE_VALUES",
    )
    gem_carat_sizes: List[Decimal] = Field(
        default_factory=lambda: [Decimal(str(c)) for c in DEFAULT_CARAT_SIZES],
        alias="GEM_CARAT_SIZES",
    )
    min_gem_types: int = Field(5, ge=1, le=15, alias="MIN_GEM_TYPES")

    # Participant
    user_id: str = Field("gm", alias="USER_ID")
    is_authority: bool = Field(True, alias="IS_AUTHORITY")
    channel_url: Optional[str] = Field(None, alias="CHANNEL_URL")
    data_file: str = Field("data/bazaar.json", alias="DATA_FILE")

    # System
    debug_mode: bool = Field(False, alias="DEBUG_MODE")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("currency_denominations")
    @classmethod
    def _distinct_denominations(cls, value: List[DenominationSetting]) -> List[DenominationSetting]:
        names = [d.name for d in value]
        if len(set(names)) != len(names):
            raise ValueError("Denomination names must be unique")
        values = [d.value for d in value]
        if len(set(values)) != len(values):
            raise ValueError("Denomination values must be distinct")
        return sorted(value, key=lambda d: d.value, reverse=True)

    @field_validator("gem_carat_sizes")
    @classmethod
    def _positive_sizes(cls, value: List[Decimal]) -> List[Decimal]:
        if any(size <= 0 for size in value):
            raise ValueError("Carat sizes must be positive")
        return sorted(value)

    @property
    def denominations(self) -> List[Denomination]:
        return [d.to_domain() for d in self.currency_denominations]


# Singleton instance
try:
    settings = Settings()  # type: ignore
except Exception as e:
    # main() refuses to start when this is None
    print(f"❌ Configuration Error: {e}")
    settings = None  # type: ignore
