from __future__ import annotations

import os
from dataclasses import dataclass


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default) not in ("0", "false", "False")


@dataclass(frozen=True)
class Settings:
    # Pressero admin API
    pressero_admin_url: str = os.environ.get("PRESSERO_ADMIN_URL", "https://admin.ams.v6.pressero.com").rstrip("/")
    pressero_username: str = os.environ.get("PRESSERO_USERNAME", "")
    pressero_password: str = os.environ.get("PRESSERO_PASSWORD", "")
    pressero_subscriber_id: str = os.environ.get("PRESSERO_SUBSCRIBER_ID", "")
    pressero_consumer_id: str = os.environ.get("PRESSERO_CONSUMER_ID", "")
    site_domain_suffix: str = os.environ.get("PRESSERO_SITE_DOMAIN_SUFFIX", ".pressero.com").lower()
    # Some API versions drop the /site/{domain} segment on user, product and address-book routes
    site_scoped_paths: bool = _flag("PRESSERO_SITE_SCOPED_PATHS", "1")
    upstream_timeout_seconds: float = float(os.environ.get("UPSTREAM_TIMEOUT_SECONDS", "30"))

    # Address defaults
    default_country: str = os.environ.get("DEFAULT_COUNTRY", "FR").upper()
    default_business: str = os.environ.get("DEFAULT_BUSINESS", "Distribution")
    default_first_name: str = os.environ.get("DEFAULT_FIRST_NAME", "Client")
    default_last_name: str = os.environ.get("DEFAULT_LAST_NAME", "Distribution")
    default_state_province: str = os.environ.get("DEFAULT_STATE_PROVINCE", "NA")

    # Cart
    cart_item_name: str = os.environ.get("CART_ITEM_NAME", "Distribution")
    cart_price_warning: str = os.environ.get("CART_PRICE_WARNING", "ReOrderFullSuccess_PriceWarning")

    # Uploads
    max_upload_bytes: int = int(os.environ.get("MAX_UPLOAD_BYTES", str(15 * 1024 * 1024)))

    # HTTP surface
    cors_origin_regex: str = os.environ.get("CORS_ORIGIN_REGEX", r"https://([a-z0-9-]+\.)*pressero\.com")
    metrics_enabled: bool = _flag("METRICS_ENABLED", "1")
    log_level: str = os.environ.get("LOG_LEVEL", "INFO").upper()


@dataclass(frozen=True)
class AddressDefaults:
    country: str = "FR"
    business: str = "Distribution"
    first_name: str = "Client"
    last_name: str = "Distribution"
    state_province: str = "NA"

    @classmethod
    def from_settings(cls, settings: Settings) -> "AddressDefaults":
        return cls(
            country=settings.default_country,
            business=settings.default_business,
            first_name=settings.default_first_name,
            last_name=settings.default_last_name,
            state_province=settings.default_state_province,
        )


S = Settings()
DEFAULTS = AddressDefaults.from_settings(S)
