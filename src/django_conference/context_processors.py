"""Django context processors for django-conference."""

from typing import TYPE_CHECKING

from django_conference.features import is_feature_enabled

if TYPE_CHECKING:
    from django.http import HttpRequest


FEATURE_NAMES = (
    "registration",
    "cfp",
    "reviews",
    "public_ui",
    "manage_ui",
    "all_ui",
)


def resolve_features(conference: object | None = None) -> dict[str, bool]:
    """Return ``{"<feature>_enabled": bool}`` for every known feature."""
    return {f"{name}_enabled": is_feature_enabled(name, conference=conference) for name in FEATURE_NAMES}


def conference_features(request: "HttpRequest") -> dict[str, dict[str, bool]]:
    """Expose resolved feature toggle flags to templates.

    Uses per-conference DB overrides when the request carries a
    ``conference`` attribute. Add
    ``"django_conference.context_processors.conference_features"`` to the
    ``context_processors`` list in your ``TEMPLATES`` setting.
    """
    return {"conference_features": resolve_features(getattr(request, "conference", None))}
