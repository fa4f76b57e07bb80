"""Minimal URL configuration for tests."""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("manage/<slug:conference_slug>/api/", include("django_conference.manage.urls")),
    path("<slug:conference_slug>/api/cfp/", include("django_conference.cfp.urls")),
    path("<slug:conference_slug>/api/", include("django_conference.registration.urls")),
    path("<slug:conference_slug>/api/", include("django_conference.conference.urls")),
]
