"""URL configuration for the call-for-papers app.

Mount under a conference-scoped prefix in the host project::

    path("<slug:conference_slug>/api/cfp/", include("django_conference.cfp.urls"))
"""

from django.urls import path

from django_conference.cfp.views import (
    AttendanceView,
    ReviewerDashboardView,
    ReviewerSubmissionView,
    ReviewView,
    SpeakerProfileView,
    SubmissionDetailView,
    SubmissionListView,
    SubmissionStatusView,
    TagListView,
)

app_name = "cfp"

urlpatterns = [
    path("speaker/", SpeakerProfileView.as_view(), name="speaker-profile"),
    path("submissions/", SubmissionListView.as_view(), name="submission-list"),
    path("submissions/<int:submission_id>/", SubmissionDetailView.as_view(), name="submission-detail"),
    path("submissions/<int:submission_id>/status/", SubmissionStatusView.as_view(), name="submission-status"),
    path("attendance/", AttendanceView.as_view(), name="attendance"),
    path("tags/", TagListView.as_view(), name="tags"),
    path("reviewer/dashboard/", ReviewerDashboardView.as_view(), name="reviewer-dashboard"),
    path(
        "reviewer/submissions/<int:submission_id>/",
        ReviewerSubmissionView.as_view(),
        name="reviewer-submission",
    ),
    path("reviewer/submissions/<int:submission_id>/review/", ReviewView.as_view(), name="review"),
]
