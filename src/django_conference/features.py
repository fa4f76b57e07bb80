"""Feature toggles for the conference apps.

A feature is on or off according to, in order of precedence:

1. The conference's ``FeatureFlags`` row, where a non-null value wins.
2. ``DJANGO_CONFERENCE["features"]``.

``public_ui`` and ``manage_ui`` are additionally gated by ``all_ui``, which
itself resolves through the same two layers.
"""

from typing import TYPE_CHECKING

from django.core.exceptions import ObjectDoesNotExist
from django.http import Http404, HttpRequest, HttpResponse

from django_conference.settings import get_config

if TYPE_CHECKING:
    from django_conference.conference.models import FeatureFlags

_UI_FEATURES = frozenset({"public_ui", "manage_ui"})


def _flags_for(conference: object | None) -> "FeatureFlags | None":
    if conference is None:
        return None
    try:
        return conference.feature_flags  # type: ignore[attr-defined]
    except ObjectDoesNotExist:
        return None


def _resolve(attr: str, flags: "FeatureFlags | None") -> bool:
    override = getattr(flags, attr, None) if flags is not None else None
    if override is not None:
        return override
    return getattr(get_config().features, attr)


def is_feature_enabled(feature: str, conference: object | None = None) -> bool:
    """Return whether *feature* is on, globally or for *conference*.

    Raises:
        ValueError: For a feature name the settings do not define.
    """
    attr = f"{feature}_enabled"
    if not hasattr(get_config().features, attr):
        msg = f"Unknown feature: {feature!r}"
        raise ValueError(msg)

    flags = _flags_for(conference)
    if feature in _UI_FEATURES and not _resolve("all_ui_enabled", flags):
        return False
    return _resolve(attr, flags)


def require_feature(feature: str, conference: object | None = None) -> None:
    """Raise :class:`~django.http.Http404` if *feature* is off."""
    if not is_feature_enabled(feature, conference=conference):
        raise Http404(f"Feature {feature!r} is not enabled")


class FeatureRequiredMixin:
    """Answer 404 unless every feature in ``required_feature`` is on.

    Placed after ``ConferenceMixin`` the resolved ``self.conference`` is
    used for per-conference overrides::

        class TagListView(JsonApiMixin, ConferenceMixin, FeatureRequiredMixin, View):
            required_feature = "cfp"
    """

    required_feature: str | tuple[str, ...] = ""

    def get_feature_conference(self) -> object | None:
        return getattr(self, "conference", None)

    def dispatch(self, request: HttpRequest, *args: object, **kwargs: object) -> HttpResponse:
        required = self.required_feature
        features = (required,) if isinstance(required, str) else required
        conference = self.get_feature_conference()
        for feature in filter(None, features):
            require_feature(feature, conference=conference)
        return super().dispatch(request, *args, **kwargs)  # type: ignore[misc]
