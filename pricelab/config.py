"""Application configuration via pydantic-settings."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PRICELAB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Demand model
    elasticity_factor: Decimal = Decimal("1.5")
    baseline_daily_units: int = 100

    # Validation limits
    max_change_percent_cap: Decimal = Decimal("50")
    max_discount_percent: Decimal = Decimal("50")

    # Results queries
    results_default_limit: int = 20
    results_max_limit: int = 100

    # Identity recorded on approvals and audit entries
    actor: str = "cli"

    # Data directory
    data_dir: Path = Path("./data")

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"

    @property
    def db_path(self) -> Path:
        return self.data_dir / "pricelab.db"

    def ensure_data_dir(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
