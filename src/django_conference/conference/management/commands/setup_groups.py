"""Management command to create default permission groups for conference staff."""

from typing import Any

from django.contrib.auth.models import Group, Permission
from django.core.management.base import BaseCommand

ORGANIZERS_GROUP = "Conference: Organizers"
TICKET_SUPPORT_GROUP = "Conference: Ticket Support"
FINANCE_GROUP = "Conference: Finance"
CFP_COMMITTEE_GROUP = "CFP: Committee"


def _crud(app_label: str, *models: str) -> list[tuple[str, str]]:
    return [(app_label, f"{action}_{model}") for model in models for action in ("add", "change", "delete", "view")]


def _view(app_label: str, *models: str) -> list[tuple[str, str]]:
    return [(app_label, f"view_{model}") for model in models]


# Mapping of group name -> list of (app_label, codename) permissions.
# Uses the app labels defined in each app's AppConfig (conference_core, etc.).
_GROUP_PERMISSIONS: dict[str, list[tuple[str, str]]] = {
    ORGANIZERS_GROUP: [
        *_crud("conference_core", "conference", "pricingstage", "featureflags"),
        *_crud("conference_registration", "tickettype", "addon", "voucher", "ticket", "verificationrequest"),
        *_view("conference_registration", "order", "orderlineitem", "cart", "cartitem", "cartattendee", "payment"),
        *_view("conference_cfp", "speaker", "submission", "review", "reviewer"),
        *_view("conference_notifications", "outboundemail"),
    ],
    TICKET_SUPPORT_GROUP: [
        *_view("conference_core", "conference", "pricingstage"),
        *_view("conference_registration", "tickettype", "addon"),
        ("conference_registration", "add_voucher"),
        ("conference_registration", "change_voucher"),
        ("conference_registration", "view_voucher"),
        ("conference_registration", "add_ticket"),
        ("conference_registration", "change_ticket"),
        ("conference_registration", "view_ticket"),
        *_view("conference_registration", "cart", "cartitem", "cartattendee", "orderlineitem", "payment"),
        ("conference_registration", "view_order"),
        ("conference_registration", "view_verificationrequest"),
        ("conference_registration", "change_verificationrequest"),
        ("conference_registration", "change_order"),
        *_view("conference_notifications", "outboundemail"),
        ("conference_notifications", "change_outboundemail"),
    ],
    FINANCE_GROUP: [
        ("conference_core", "view_conference"),
        ("conference_registration", "view_order"),
        ("conference_registration", "change_order"),
        ("conference_registration", "view_orderlineitem"),
        ("conference_registration", "add_payment"),
        ("conference_registration", "change_payment"),
        ("conference_registration", "view_payment"),
        *_view("conference_registration", "voucher", "tickettype", "addon", "ticket", "stripeevent"),
    ],
    CFP_COMMITTEE_GROUP: [
        ("conference_core", "view_conference"),
        *_view("conference_cfp", "speaker", "submission", "tag", "decisionevent", "scheduleddecisionemail"),
        ("conference_cfp", "change_submission"),
        *_crud("conference_cfp", "review"),
        ("conference_cfp", "view_reviewer"),
    ],
}


class Command(BaseCommand):
    """Create default permission groups for conference staff roles.

    Creates four groups with appropriate permissions:

    * **Conference: Organizers** -- conference, pricing, ticket and voucher management
    * **Conference: Ticket Support** -- ticket issuing and reassignment, order support
    * **Conference: Finance** -- orders, payments and revenue visibility
    * **CFP: Committee** -- submission review

    Safe to run multiple times; existing groups are updated with the defined
    permission set.
    """

    help = "Create default permission groups for conference staff roles."

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the setup_groups command."""
        for group_name, perm_specs in _GROUP_PERMISSIONS.items():
            group, created = Group.objects.get_or_create(name=group_name)
            verb = "Created" if created else "Updated"

            wanted = set(perm_specs)
            permissions = Permission.objects.filter(
                content_type__app_label__in={app for app, _ in perm_specs},
            ).select_related("content_type")
            matched = [p for p in permissions if (p.content_type.app_label, p.codename) in wanted]
            group.permissions.set(matched)

            self.stdout.write(self.style.SUCCESS(f"  {verb} group '{group_name}' with {len(matched)} permissions"))

        self.stdout.write(self.style.SUCCESS("\nDone."))
