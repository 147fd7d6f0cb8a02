"""Configuration management using Pydantic Settings"""

from decimal import Decimal
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./parental_guard.db"

    # Service
    service_name: str = "parental-guard"
    log_level: str = "INFO"

    # Day/night window (account-local wall clock, [start, end) is "normal")
    normal_hours_start: int = Field(default=7, ge=0, le=23)
    normal_hours_end: int = Field(default=21, ge=1, le=24)

    # Payee safety
    first_transfer_floor: Decimal = Field(default=Decimal("1000"), ge=0)
    night_payee_window_hours: int = Field(default=12, gt=0)

    # Emergency override
    emergency_override_minutes: int = Field(default=60, gt=0)

    # Behavioral baseline
    default_baseline_amount: Decimal = Field(default=Decimal("500"), gt=0)
    pattern_merge_window_hours: int = Field(default=24, gt=0)

    # Category limit is authoritative unless this is set, in which case the
    # overall monthly limit is checked as well
    apply_monthly_with_category_limit: bool = False

    @model_validator(mode="after")
    def check_normal_hours(self) -> "Settings":
        if self.normal_hours_start >= self.normal_hours_end:
            raise ValueError(
                f"normal_hours_start={self.normal_hours_start} must be before normal_hours_end={self.normal_hours_end}"
            )
        return self


settings = Settings()
