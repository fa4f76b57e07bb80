"""Model signal receivers for the conference app."""

from typing import Any

from django.db.models.signals import post_save
from django.dispatch import receiver

from django_conference.conference.models import Conference, FeatureFlags


@receiver(post_save, sender=Conference, dispatch_uid="conference_core_feature_flags")
def ensure_feature_flags(instance: Conference, created: bool, **kwargs: Any) -> None:  # noqa: ARG001, FBT001
    if created:
        FeatureFlags.objects.get_or_create(conference=instance)
