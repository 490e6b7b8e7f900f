"""
Configuration module for the queue dispatcher.
Loads environment variables and provides typed configuration.
"""

from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file
env_path = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=env_path)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Supabase (service role key, bypasses RLS)
    supabase_url: str = ""
    supabase_key: str = ""

    # Stripe (deposits)
    stripe_secret_key: str = ""
    stripe_publishable_key: str = ""
    stripe_webhook_secret: Optional[str] = (
        None  # Required in production for webhook verification
    )

    # Dispatch cycle
    dispatch_lookback_minutes: int = 3
    deposit_rank_threshold: int = 10
    opportunity_rank_threshold: int = 20
    deposit_grace_minutes: int = 120
    lock_ttl_seconds: int = 120
    watermark_key: str = "slot_opened"
    watermark_fallback_minutes: int = 10
    dispatch_interval_seconds: int = 60

    # Time zones
    slot_timezone: str = "Pacific/Honolulu"  # civil zone of slot_states date/time
    display_timezone: str = "Pacific/Honolulu"
    display_timezone_label: str = "HST"

    # Deposits
    deposit_amount_cents: int = 2500
    deposit_currency: str = "usd"
    deposit_pay_url: str = "https://example.com/pay"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    environment: str = "development"  # development, staging, production

    # Redis Configuration (for APScheduler cluster support)
    redis_url: Optional[str] = (
        None  # Redis connection URL (e.g., redis://localhost:6379/0)
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def validate_all_required(self) -> None:
        """
        Validate that all required settings are present.

        Raises:
            ValueError: If required fields are missing or invalid
        """
        required_fields = [
            "supabase_url",
            "supabase_key",
            "stripe_secret_key",
            "stripe_publishable_key",
        ]

        missing = []
        for field in required_fields:
            value = getattr(self, field, None)

            if not value:
                missing.append(field)
                continue

            # Check for placeholder values
            value_str = str(value).lower()
            if value_str.startswith("your_"):
                missing.append(field)
                continue

        if missing:
            raise ValueError(
                f"Missing or invalid required configuration: "
                f"{', '.join(missing)}. "
                f"Please check your .env file and ensure all required "
                f"values are set."
            )

        if self.opportunity_rank_threshold <= self.deposit_rank_threshold:
            raise ValueError(
                "OPPORTUNITY_RANK_THRESHOLD must be greater than "
                "DEPOSIT_RANK_THRESHOLD"
            )


# Global settings instance
settings = Settings()
