from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Optional
from pydantic import AnyHttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment with defaults.

    Environment variable mapping follows pydantic's rules (e.g., STORAGE_CURRENCY, FEE_AMOUNT, DEPOSIT_LIMIT_AMOUNT, RATE_STALE_AFTER_SECONDS).
    """

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Basic app metadata
    app_name: str = "fxentry"
    debug: bool = True
    version: str = "0.1.0"

    # Data & persistence (balance / activity store)
    data_dir: Path = Path("data")
    db_filename: str = "fxentry.sqlite3"
    db_path: Optional[Path] = None  # derived if not provided

    # Currencies
    storage_currency: str = "USD"  # balances are always kept in this currency
    default_display_currency: str = "GBP"

    # Exchange rates
    # Allowed: 'static' (bootstrap table), 'external-http' (Frankfurter)
    exchange_rate_provider: str = "static"
    exchange_api_base_url: AnyHttpUrl = "https://api.frankfurter.app/latest"
    http_timeout_seconds: float = 5.0
    http_retries: int = 2
    rate_stale_after_seconds: int = 300

    # Fees
    fee_amount: float = 0.50
    fee_currency: str = "USD"
    free_transfers: int = 0
    early_adopter: bool = False
    early_adopter_expiry: Optional[datetime] = None

    # Limits (single transaction, not a rolling window)
    deposit_limit_amount: Optional[float] = 7000
    deposit_limit_currency: str = "GBP"
    withdrawal_limit_amount: Optional[float] = None
    withdrawal_limit_currency: str = "USD"

    def init_post_load(self) -> None:
        """Finalize derived fields and ensure directories exist."""
        from fxentry.models.constants import is_supported

        if self.db_path is None:
            self.db_path = self.data_dir / self.db_filename
        # Ensure persistence directory exists
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        allowed = {"static", "external-http"}
        if self.exchange_rate_provider not in allowed:
            raise ValueError(
                f"Unsupported exchange_rate_provider '{self.exchange_rate_provider}'. Allowed: {allowed}"
            )
        for field in (
            "storage_currency",
            "default_display_currency",
            "fee_currency",
            "deposit_limit_currency",
            "withdrawal_limit_currency",
        ):
            code = getattr(self, field).upper()
            if not is_supported(code):
                raise ValueError(f"{field}: unsupported currency '{code}'")
            setattr(self, field, code)
        if self.rate_stale_after_seconds <= 0:
            raise ValueError("rate_stale_after_seconds must be positive")


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    settings.init_post_load()
    return settings
