import pytest
from django.test import override_settings

from django_conference.settings import get_config


def test_get_config_defaults() -> None:
    with override_settings(DJANGO_CONFERENCE={}):
        config = get_config()
        assert config.email.send_interval_ms == 600
        assert config.cfp.max_submissions_per_speaker == 5
        assert config.cfp.rejection_coupon_prefix == "CFPTHX"
        assert config.cfp.rejection_coupon_default_percent == 15
        assert config.cfp.rejection_coupon_max_percent == 80
        assert config.cart_expiry_minutes == 30
        assert config.currency == "CHF"


def test_get_config_reads_nested_sections() -> None:
    overrides = {"stripe": {"api_version": "2024-01-01"}, "cfp": {"max_submissions_per_speaker": 2}}
    with override_settings(DJANGO_CONFERENCE=overrides):
        config = get_config()
        assert config.stripe.api_version == "2024-01-01"
        assert config.cfp.max_submissions_per_speaker == 2


def test_get_config_rejects_non_mapping_root() -> None:
    with override_settings(DJANGO_CONFERENCE=["bad"]):
        with pytest.raises(TypeError, match="must be a mapping"):
            get_config()


def test_get_config_rejects_non_mapping_nested_sections() -> None:
    with override_settings(DJANGO_CONFERENCE={"stripe": ["bad"]}):
        with pytest.raises(TypeError, match=r"DJANGO_CONFERENCE\['stripe'\] must be a mapping"):
            get_config()

    with override_settings(DJANGO_CONFERENCE={"cfp": "bad"}):
        with pytest.raises(TypeError, match=r"DJANGO_CONFERENCE\['cfp'\] must be a mapping"):
            get_config()


def test_get_config_validates_primitive_values() -> None:
    with override_settings(DJANGO_CONFERENCE={"cart_expiry_minutes": 0}):
        with pytest.raises(ValueError, match="positive integer"):
            get_config()

    with override_settings(DJANGO_CONFERENCE={"pending_order_expiry_minutes": 0}):
        with pytest.raises(ValueError, match="positive integer"):
            get_config()

    with override_settings(DJANGO_CONFERENCE={"pending_order_expiry_minutes": 30}):
        with pytest.raises(ValueError, match="greater than 30"):
            get_config()

    with override_settings(DJANGO_CONFERENCE={"currency": ""}):
        with pytest.raises(ValueError, match="currency"):
            get_config()

    with override_settings(DJANGO_CONFERENCE={"currency_symbol": " "}):
        with pytest.raises(ValueError, match="currency_symbol"):
            get_config()

    with override_settings(DJANGO_CONFERENCE={"email": {"send_interval_ms": -1}}):
        with pytest.raises(ValueError, match="send_interval_ms"):
            get_config()

    with override_settings(DJANGO_CONFERENCE={"cfp": {"rejection_coupon_max_percent": 120}}):
        with pytest.raises(ValueError, match="rejection_coupon_max_percent"):
            get_config()

    with override_settings(DJANGO_CONFERENCE={"cfp": {"max_submissions_per_speaker": 0}}):
        with pytest.raises(ValueError, match="max_submissions_per_speaker"):
            get_config()


def test_get_config_rejects_non_bool_rate_limit_enabled() -> None:
    with override_settings(DJANGO_CONFERENCE={"rate_limit": {"enabled": "yes"}}):
        with pytest.raises(TypeError, match="enabled"):
            get_config()


def test_get_config_rejects_unknown_keys() -> None:
    with override_settings(DJANGO_CONFERENCE={"nonsense": 1}):
        with pytest.raises(TypeError):
            get_config()


def test_get_config_cache_clears_on_setting_changed() -> None:
    with override_settings(DJANGO_CONFERENCE={"currency": "USD"}):
        assert get_config().currency == "USD"

    with override_settings(DJANGO_CONFERENCE={"currency": "EUR"}):
        assert get_config().currency == "EUR"
