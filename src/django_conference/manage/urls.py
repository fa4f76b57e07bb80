"""URL configuration for the back-office JSON API.

Mount in the host project::

    path("manage/<slug:conference_slug>/api/", include("django_conference.manage.urls"))
"""

from django.urls import path

from django_conference.manage.views import (
    TicketCancelView,
    TicketIssueView,
    TicketListView,
    TicketReassignView,
    VerificationDecisionView,
    VerificationListView,
)
from django_conference.manage.views_cfp import (
    BulkDecisionView,
    ReviewerDeactivateView,
    ReviewerListView,
    ScheduleEmailView,
    SendEmailNowView,
    SpeakerListView,
    SubmissionDecisionView,
    SubmissionTriageDetailView,
    SubmissionTriageListView,
)
from django_conference.manage.views_financial import FinancialsView
from django_conference.manage.views_vouchers import VoucherBulkGenerateView

app_name = "manage"

urlpatterns = [
    path("financials/", FinancialsView.as_view(), name="financials"),
    path("tickets/", TicketListView.as_view(), name="ticket-list"),
    path("tickets/issue/", TicketIssueView.as_view(), name="ticket-issue"),
    path("tickets/<int:ticket_id>/reassign/", TicketReassignView.as_view(), name="ticket-reassign"),
    path("tickets/<int:ticket_id>/cancel/", TicketCancelView.as_view(), name="ticket-cancel"),
    path("verifications/", VerificationListView.as_view(), name="verification-list"),
    path(
        "verifications/<int:request_id>/decision/",
        VerificationDecisionView.as_view(),
        name="verification-decision",
    ),
    path("vouchers/bulk/", VoucherBulkGenerateView.as_view(), name="voucher-bulk"),
    path("cfp/submissions/", SubmissionTriageListView.as_view(), name="cfp-submission-list"),
    path("cfp/submissions/<int:submission_id>/", SubmissionTriageDetailView.as_view(), name="cfp-submission-detail"),
    path(
        "cfp/submissions/<int:submission_id>/decision/",
        SubmissionDecisionView.as_view(),
        name="cfp-submission-decision",
    ),
    path("cfp/decisions/bulk/", BulkDecisionView.as_view(), name="cfp-bulk-decision"),
    path(
        "cfp/submissions/<int:submission_id>/schedule-email/",
        ScheduleEmailView.as_view(),
        name="cfp-schedule-email",
    ),
    path(
        "cfp/submissions/<int:submission_id>/schedule-email/send-now/",
        SendEmailNowView.as_view(),
        name="cfp-send-email-now",
    ),
    path("cfp/reviewers/", ReviewerListView.as_view(), name="cfp-reviewer-list"),
    path(
        "cfp/reviewers/<int:reviewer_id>/deactivate/",
        ReviewerDeactivateView.as_view(),
        name="cfp-reviewer-deactivate",
    ),
    path("cfp/speakers/", SpeakerListView.as_view(), name="cfp-speaker-list"),
]
