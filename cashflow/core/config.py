from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from decimal import Decimal
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'cashflow_user'
    POSTGRES_PASSWORD: str = 'cashflow_pass'
    POSTGRES_DB: str = 'cashflow_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432

    # Redis settings
    REDIS_HOST: str = 'redis'
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    # Currency settings
    EXCHANGE_RATE_COP_PER_USD: Decimal = Decimal('4000')  # 1 USD = 4000 COP
    REPORTING_CURRENCY: str = 'COP'

    # Generation horizons
    PAYMENT_HORIZON_PERIODS: int = 12
    ACCRUAL_HORIZON_MONTHS: int = 3
    ACCRUAL_SYNC_INTERVAL_SECONDS: float = 30 * 60  # 30 minutes

    # Metrics
    BURN_RATE_WINDOW_MONTHS: int = 6
    CONCENTRATION_RISK_THRESHOLD: Decimal = Decimal('30')
    PROJECTION_HORIZON_MONTHS: int = 6

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("REPORTING_CURRENCY", mode="before")
    @classmethod
    def parse_currency(cls, v):
        if isinstance(v, str):
            return v.upper().strip('"').strip("'")
        return v

    @field_validator("EXCHANGE_RATE_COP_PER_USD")
    @classmethod
    def validate_rate(cls, v):
        if v <= 0:
            raise ValueError("EXCHANGE_RATE_COP_PER_USD debe ser mayor que cero")
        return v

settings = Settings()
