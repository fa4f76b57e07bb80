"""Typed configuration for django-conference.

Reads a single ``DJANGO_CONFERENCE`` dict from Django settings and exposes it
as composed, frozen dataclasses with sensible defaults.

Usage::

    from django_conference.settings import get_config

    config = get_config()
    config.stripe.api_version
    config.email.send_interval_ms
    config.cfp.max_submissions_per_speaker
"""

import functools
from collections.abc import Mapping
from dataclasses import dataclass, field

from django.conf import settings
from django.test.signals import setting_changed

STRIPE_MIN_SESSION_MINUTES = 30


@dataclass(frozen=True, slots=True)
class StripeConfig:
    """Stripe payment gateway configuration.

    Per-conference keys stored on the ``Conference`` row take precedence;
    these values only supply the API version and webhook tolerance.
    """

    secret_key: str | None = None
    publishable_key: str | None = None
    webhook_secret: str | None = None
    api_version: str = "2025-10-29.clover"
    webhook_tolerance: int = 300


@dataclass(frozen=True, slots=True)
class EmailConfig:
    """Outgoing email configuration."""

    from_email: str = "Conference <hello@example.com>"
    reply_to: str = ""
    send_interval_ms: int = 600
    abandonment_delay_hours: int = 24
    site_url: str = "http://localhost:8000"


@dataclass(frozen=True, slots=True)
class CFPConfig:
    """Call-for-papers limits and decision email defaults."""

    max_submissions_per_speaker: int = 5
    decision_email_delay_minutes: int = 30
    rejection_coupon_prefix: str = "CFPTHX"
    rejection_coupon_default_percent: int = 15
    rejection_coupon_max_percent: int = 80
    rejection_coupon_default_validity_days: int = 60
    rejection_coupon_max_validity_days: int = 365


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    """Fixed-window limits applied to public, unauthenticated endpoints."""

    enabled: bool = True
    window_seconds: int = 60
    max_requests: int = 10


@dataclass(frozen=True, slots=True)
class FeaturesConfig:
    """Feature toggles for enabling/disabling django-conference modules.

    All features are enabled by default. Set to ``False`` in
    ``DJANGO_CONFERENCE['features']`` to disable.
    """

    registration_enabled: bool = True
    cfp_enabled: bool = True
    reviews_enabled: bool = True

    public_ui_enabled: bool = True
    manage_ui_enabled: bool = True
    all_ui_enabled: bool = True


@dataclass(frozen=True, slots=True)
class ConferenceConfig:
    """Top-level django-conference configuration."""

    stripe: StripeConfig = field(default_factory=StripeConfig)
    email: EmailConfig = field(default_factory=EmailConfig)
    cfp: CFPConfig = field(default_factory=CFPConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    features: FeaturesConfig = field(default_factory=FeaturesConfig)
    cart_expiry_minutes: int = 30
    pending_order_expiry_minutes: int = 35
    order_reference_prefix: str = "ORD"
    currency: str = "CHF"
    currency_symbol: str = "CHF"


_SECTIONS: dict[str, type] = {
    "stripe": StripeConfig,
    "email": EmailConfig,
    "cfp": CFPConfig,
    "rate_limit": RateLimitConfig,
    "features": FeaturesConfig,
}


@functools.lru_cache(maxsize=1)
def get_config() -> ConferenceConfig:
    """Build and return the conference configuration.

    Reads ``settings.DJANGO_CONFERENCE`` (a plain dict) and returns a frozen
    :class:`ConferenceConfig`.  The result is cached; the cache is cleared
    automatically when Django's ``setting_changed`` signal fires (e.g. inside
    ``override_settings``).
    """
    raw = getattr(settings, "DJANGO_CONFERENCE", {})
    if not isinstance(raw, Mapping):
        msg = "DJANGO_CONFERENCE must be a mapping (dict-like object)"
        raise TypeError(msg)
    raw_data = dict(raw)

    sections: dict[str, object] = {}
    for name, section_class in _SECTIONS.items():
        section_data = raw_data.pop(name, {})
        if not isinstance(section_data, Mapping):
            msg = f"DJANGO_CONFERENCE['{name}'] must be a mapping (dict-like object)"
            raise TypeError(msg)
        sections[name] = section_class(**dict(section_data))

    config = ConferenceConfig(**sections, **raw_data)
    _validate_conference_config(config)
    return config


def _require_positive_int(value: object, label: str) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        msg = f"DJANGO_CONFERENCE[{label}] must be a positive integer"
        raise ValueError(msg)


def _validate_conference_config(config: ConferenceConfig) -> None:
    """Validate high-impact configuration values with clear error messages."""
    _require_positive_int(config.cart_expiry_minutes, "'cart_expiry_minutes'")
    _require_positive_int(config.pending_order_expiry_minutes, "'pending_order_expiry_minutes'")
    if config.pending_order_expiry_minutes <= STRIPE_MIN_SESSION_MINUTES:
        msg = (
            "DJANGO_CONFERENCE['pending_order_expiry_minutes'] must be greater than "
            f"{STRIPE_MIN_SESSION_MINUTES} (the shortest Stripe Checkout Session lifetime)"
        )
        raise ValueError(msg)
    _require_positive_int(config.cfp.max_submissions_per_speaker, "'cfp']['max_submissions_per_speaker'")
    _require_positive_int(config.rate_limit.window_seconds, "'rate_limit']['window_seconds'")
    _require_positive_int(config.rate_limit.max_requests, "'rate_limit']['max_requests'")
    if not isinstance(config.currency, str) or not config.currency.strip():
        msg = "DJANGO_CONFERENCE['currency'] must be a non-empty string"
        raise ValueError(msg)
    if not isinstance(config.currency_symbol, str) or not config.currency_symbol.strip():
        msg = "DJANGO_CONFERENCE['currency_symbol'] must be a non-empty string"
        raise ValueError(msg)
    if not isinstance(config.email.send_interval_ms, int) or config.email.send_interval_ms < 0:
        msg = "DJANGO_CONFERENCE['email']['send_interval_ms'] must be a non-negative integer"
        raise ValueError(msg)
    if not isinstance(config.cfp.decision_email_delay_minutes, int) or config.cfp.decision_email_delay_minutes < 0:
        msg = "DJANGO_CONFERENCE['cfp']['decision_email_delay_minutes'] must be a non-negative integer"
        raise ValueError(msg)
    max_percent = config.cfp.rejection_coupon_max_percent
    if not isinstance(max_percent, int) or not 1 <= max_percent <= 100:  # noqa: PLR2004
        msg = "DJANGO_CONFERENCE['cfp']['rejection_coupon_max_percent'] must be between 1 and 100"
        raise ValueError(msg)
    if not isinstance(config.rate_limit.enabled, bool):
        msg = "DJANGO_CONFERENCE['rate_limit']['enabled'] must be a boolean"
        raise TypeError(msg)


def _clear_config_cache(*, setting: str, **kwargs: object) -> None:  # noqa: ARG001
    """Clear the cached config when Django settings change during tests."""
    if setting == "DJANGO_CONFERENCE":
        get_config.cache_clear()


setting_changed.connect(_clear_config_cache, dispatch_uid="django_conference.settings.clear_config_cache")
