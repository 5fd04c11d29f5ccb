from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from decimal import Decimal
from functools import lru_cache
from typing import Dict, List


class Settings(BaseSettings):
    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # Database - PostgreSQL for production, SQLite for development
    database_url: str = Field(
        default="sqlite:///./kennel.db",
        alias="DATABASE_URL"
    )

    # Shared secret checked by the admin gate (stand-in for the auth middleware)
    admin_token: str = Field(default="dev-admin-token", alias="ADMIN_TOKEN")

    # CORS - Frontend URLs from environment (comma-separated)
    allowed_origins: str = Field(
        default="http://localhost:5173,http://127.0.0.1:5173,http://localhost:5000",
        alias="ALLOWED_ORIGINS"
    )

    # Business locale
    business_timezone: str = Field(default="Europe/Dublin", alias="BUSINESS_TIMEZONE")
    currency: str = Field(default="EUR", alias="CURRENCY")

    # ==============================================
    # Capacity & reservation holds
    # ==============================================
    # Fallback capacities, used when no default row exists in the database
    max_capacity_daycare: int = Field(default=10, ge=0, alias="MAX_CAPACITY_DAYCARE")
    max_capacity_boarding_small: int = Field(default=10, ge=0, alias="MAX_CAPACITY_BOARDING_SMALL")
    max_capacity_boarding_large: int = Field(default=8, ge=0, alias="MAX_CAPACITY_BOARDING_LARGE")
    max_capacity_trial: int = Field(default=8, ge=0, alias="MAX_CAPACITY_TRIAL")

    # Hold time-to-live in minutes
    reservation_ttl_min: int = Field(default=10, ge=1, alias="RESERVATION_TTL_MIN")

    # Sweep job (runs inside the FastAPI process)
    sweep_enabled: bool = Field(default=True, alias="SWEEP_ENABLED")
    sweep_interval_seconds: int = Field(default=60, ge=1, alias="SWEEP_INTERVAL_SECONDS")

    # Bounded retries for read operations
    read_retry_attempts: int = Field(default=3, ge=1, alias="READ_RETRY_ATTEMPTS")
    read_retry_base_delay: float = Field(default=0.05, ge=0, alias="READ_RETRY_BASE_DELAY")

    # ==============================================
    # Pricing - calendar_v2 rate table (hours_v1 rates are fixed)
    # ==============================================
    pricing_v2_daycare_flat: Decimal = Field(default=Decimal("20"), alias="PRICING_V2_DAYCARE_FLAT")
    pricing_v2_trial_flat: Decimal = Field(default=Decimal("20"), alias="PRICING_V2_TRIAL_FLAT")
    pricing_v2_night_one_dog: Decimal = Field(default=Decimal("25"), alias="PRICING_V2_NIGHT_ONE_DOG")
    pricing_v2_night_two_dogs: Decimal = Field(default=Decimal("40"), alias="PRICING_V2_NIGHT_TWO_DOGS")
    pricing_v2_late_pickup: Decimal = Field(default=Decimal("10"), alias="PRICING_V2_LATE_PICKUP")

    # Rate limiting (slowapi, in-memory per process)
    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    @field_validator('database_url')
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Hosted Postgres hands out postgres:// but SQLAlchemy needs postgresql://"""
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    @field_validator('admin_token')
    @classmethod
    def validate_admin_token(cls, v: str) -> str:
        if not v:
            raise ValueError("ADMIN_TOKEN is required and cannot be empty")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def capacity_fallbacks(self) -> Dict[str, int]:
        """Fallback capacity per service key"""
        return {
            "daycare": self.max_capacity_daycare,
            "boarding:small": self.max_capacity_boarding_small,
            "boarding:large": self.max_capacity_boarding_large,
            "trial": self.max_capacity_trial,
        }

    @property
    def cors_origins(self) -> List[str]:
        """
        Parse allowed origins from comma-separated string.
        Returns a list suitable for CORSMiddleware.
        """
        if not self.allowed_origins:
            return ["http://localhost:5173"]

        origins = []
        for origin in self.allowed_origins.split(","):
            origin = origin.strip().rstrip("/")
            if origin and origin not in origins:
                origins.append(origin)

        return origins or ["http://localhost:5173"]

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Initialize settings on module load
settings = get_settings()
