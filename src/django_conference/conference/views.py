"""Conference resolution mixin and the public conference info endpoint."""

from typing import TYPE_CHECKING

from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views import View

from django_conference.api import JsonApiMixin, serialize
from django_conference.conference.models import Conference, PricingStage
from django_conference.context_processors import resolve_features
from django_conference.features import FeatureRequiredMixin

if TYPE_CHECKING:
    from django.http import HttpRequest, HttpResponse


class ConferenceMixin:
    """Resolve the conference from the ``conference_slug`` URL kwarg.

    Stores the conference on ``self.conference`` (and on the request, for
    the feature context processor).  Raises 404 for unknown or inactive
    conferences.
    """

    conference: Conference
    kwargs: dict[str, str]

    def get_conference(self) -> Conference:
        """Look up the active conference by slug from the URL."""
        return get_object_or_404(Conference, slug=self.kwargs["conference_slug"], is_active=True)

    def dispatch(self, request: "HttpRequest", *args: str, **kwargs: str) -> "HttpResponse":
        """Resolve the conference before any downstream dispatch runs."""
        self.kwargs = kwargs
        self.conference = self.get_conference()
        request.conference = self.conference  # type: ignore[attr-defined]
        return super().dispatch(request, *args, **kwargs)  # type: ignore[misc]


class ConferenceDetailView(JsonApiMixin, ConferenceMixin, FeatureRequiredMixin, View):
    """Public summary of a conference: dates, venue, CFP window and stage."""

    login_required = False
    required_feature = "public_ui"

    def get(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        """Return the conference summary."""
        conference = self.conference
        stage = PricingStage.objects.current(conference)
        data = {
            "name": conference.name,
            "slug": conference.slug,
            "start_date": conference.start_date,
            "end_date": conference.end_date,
            "timezone": conference.timezone,
            "venue": conference.venue,
            "address": conference.address,
            "website_url": conference.website_url,
            "cfp": {
                "is_open": conference.is_cfp_open,
                "opens_at": conference.cfp_opens_at,
                "closes_at": conference.cfp_closes_at,
            },
            "current_stage": (
                {"stage": stage.stage, "name": stage.label, "ends_at": stage.ends_at} if stage is not None else None
            ),
            "features": resolve_features(conference),
        }
        return JsonResponse(serialize(data))
