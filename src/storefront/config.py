"""Application settings for the storefront.

Protean's own settings (providers, processing modes) live in ``domain.toml``.
Everything the storefront needs on top of that is read from environment
variables once and cached; tests swap in their own values with
``set_settings()``.
"""

import os
from dataclasses import dataclass, field


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


@dataclass(frozen=True)
class Settings:
    """Runtime configuration values, all overridable through the environment."""

    hold_duration_minutes: int = 10
    ledger_retention_days: int = 30
    reservation_purge_grace_hours: int = 24
    site_url: str = "http://localhost:8000"
    currency: str = "usd"
    order_number_prefix: str = "KTXZ"
    webhook_secret: str = "whsec_test"
    stripe_api_key: str | None = None
    cron_secret: str | None = None
    standard_shipping_cents: int = 899
    allowed_shipping_countries: tuple[str, ...] = field(default=("US",))

    @classmethod
    def from_env(cls) -> "Settings":
        countries = os.environ.get("SHIPPING_COUNTRIES", "US")
        return cls(
            hold_duration_minutes=_int_env("HOLD_DURATION_MINUTES", 10),
            ledger_retention_days=_int_env("PAYMENT_EVENT_RETENTION_DAYS", 30),
            reservation_purge_grace_hours=_int_env("RESERVATION_PURGE_GRACE_HOURS", 24),
            site_url=os.environ.get("SITE_URL", "http://localhost:8000").rstrip("/"),
            currency=os.environ.get("STORE_CURRENCY", "usd"),
            order_number_prefix=os.environ.get("ORDER_NUMBER_PREFIX", "KTXZ"),
            webhook_secret=os.environ.get("STRIPE_WEBHOOK_SECRET", "whsec_test"),
            stripe_api_key=os.environ.get("STRIPE_SECRET_KEY"),
            cron_secret=os.environ.get("CRON_SECRET"),
            standard_shipping_cents=_int_env("STANDARD_SHIPPING_CENTS", 899),
            allowed_shipping_countries=tuple(c.strip() for c in countries.split(",") if c.strip()),
        )


_current_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the active settings, loading them from the environment on first use."""
    global _current_settings
    if _current_settings is None:
        _current_settings = Settings.from_env()
    return _current_settings


def set_settings(settings: Settings) -> None:
    """Override the active settings (useful for tests)."""
    global _current_settings
    _current_settings = settings


def reset_settings() -> None:
    global _current_settings
    _current_settings = None
