"""URL configuration for the conference app.

Mount under a conference-scoped prefix in the host project::

    path("<slug:conference_slug>/api/", include("django_conference.conference.urls"))
"""

from django.urls import path

from django_conference.conference.views import ConferenceDetailView

app_name = "conference"

urlpatterns = [
    path("", ConferenceDetailView.as_view(), name="detail"),
]
