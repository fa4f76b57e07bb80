"""Management command to bootstrap a conference from a TOML configuration file."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from zoneinfo import ZoneInfo

from django.core.management.base import BaseCommand, CommandError, CommandParser
from django.db import transaction

from django_conference.conference.models import Conference, PricingStage
from django_conference.config_loader import load_conference_config
from django_conference.registration.models import AddOn, TicketType, Voucher

# Mapping from TOML short field names to Django model field names.
_CONFERENCE_FIELD_MAP: dict[str, str] = {
    "name": "name",
    "slug": "slug",
    "start": "start_date",
    "end": "end_date",
    "timezone": "timezone",
    "venue": "venue",
    "address": "address",
    "website_url": "website_url",
    "contact_email": "contact_email",
}

_STAGE_FIELD_MAP: dict[str, str] = {
    "stage": "stage",
    "name": "display_name",
    "description": "description",
    "priority": "priority",
    "stock_limit": "stock_limit",
    "limited_categories": "limited_categories",
}

_TICKET_FIELD_MAP: dict[str, str] = {
    "name": "name",
    "slug": "slug",
    "description": "description",
    "category": "category",
    "price": "price",
    "stripe_price_id": "stripe_price_id",
    "quantity": "total_quantity",
    "per_user": "limit_per_user",
    "voucher_required": "requires_voucher",
    "verification_required": "requires_verification",
}

_ADDON_FIELD_MAP: dict[str, str] = {
    "name": "name",
    "slug": "slug",
    "description": "description",
    "kind": "kind",
    "price": "price",
    "stripe_price_id": "stripe_price_id",
    "quantity": "total_quantity",
}

_VOUCHER_FIELD_MAP: dict[str, str] = {
    "code": "code",
    "type": "voucher_type",
    "value": "discount_value",
    "max_uses": "max_uses",
    "unlocks_hidden": "unlocks_hidden_tickets",
    "source": "source",
}


def _map_fields(data: dict[str, Any], field_map: dict[str, str]) -> dict[str, Any]:
    """Map TOML config keys to Django model field names."""
    result: dict[str, Any] = {}
    for config_key, model_field in field_map.items():
        if config_key in data:
            result[model_field] = data[config_key]
    return result


def _start_of(value: date | datetime, tz: ZoneInfo) -> datetime:
    """Return *value* as an aware datetime; bare dates start at midnight."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=tz)
    return datetime.combine(value, datetime.min.time(), tzinfo=tz)


def _end_of(value: date | datetime, tz: ZoneInfo) -> datetime:
    """Return *value* as an aware datetime; bare dates end at 23:59:59."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=tz)
    return datetime.combine(value, datetime.max.time().replace(microsecond=0), tzinfo=tz)


def _parse_availability(data: dict[str, Any], tz_name: str) -> dict[str, datetime | None]:
    """Extract available_from/available_until from a TOML ``available`` sub-table."""
    avail = data.get("available")
    if not avail or not isinstance(avail, dict):
        return {}
    tz = ZoneInfo(tz_name)
    result: dict[str, datetime | None] = {}
    if "opens" in avail:
        result["available_from"] = _start_of(avail["opens"], tz)
    if "closes" in avail:
        result["available_until"] = _end_of(avail["closes"], tz)
    return result


class Command(BaseCommand):
    """Bootstrap a conference from a TOML configuration file.

    Parses the given TOML file, validates its structure, and creates (or
    updates) the corresponding ``Conference``, ``PricingStage``,
    ``TicketType``, ``AddOn`` and ``Voucher`` records.

    Usage::

        manage.py bootstrap_conference --config conference.toml
        manage.py bootstrap_conference --config conference.toml --update
        manage.py bootstrap_conference --config conference.toml --dry-run
    """

    help = "Create or update a conference, its pricing stages, tickets and vouchers from a TOML config file."

    def add_arguments(self, parser: CommandParser) -> None:
        """Define the command-line arguments accepted by this command."""
        parser.add_argument(
            "--config",
            required=True,
            help="Path to the conference TOML configuration file.",
        )
        parser.add_argument(
            "--update",
            action="store_true",
            default=False,
            help="Update an existing conference instead of failing on duplicate slug.",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            default=False,
            help="Validate the config and print what would be created without saving.",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the bootstrap command."""
        config_path: str = options["config"]
        update: bool = options["update"]
        verbosity: int = options["verbosity"]

        try:
            conf = load_conference_config(config_path)
        except (FileNotFoundError, TypeError, ValueError) as exc:
            raise CommandError(str(exc)) from exc

        if options["dry_run"]:
            self._print_dry_run(conf)
            return

        tz_name = conf["timezone"]
        with transaction.atomic():
            conference = self._bootstrap_conference(conf, update=update)
            stages = self._bootstrap_stages(conference, conf["stages"], tz_name, update=update)
            tickets = self._bootstrap_tickets(conference, conf["tickets"], tz_name, update=update)
            addons = self._bootstrap_addons(conference, conf["addons"], tz_name, update=update)
            vouchers = self._bootstrap_vouchers(conference, conf["vouchers"], tz_name, update=update)

        results = {
            "stages": stages,
            "tickets": tickets,
            "addons": addons,
            "vouchers": vouchers,
        }
        self._print_summary(conference, results, verbosity)

    def _bootstrap_conference(self, conf: dict[str, Any], *, update: bool) -> Conference:
        """Create or update the Conference record.

        Raises:
            CommandError: If a conference with the same slug already exists and
                ``update`` is ``False``.
        """
        slug = conf["slug"]
        fields = _map_fields(conf, _CONFERENCE_FIELD_MAP)
        fields.pop("slug", None)

        cfp = conf.get("cfp")
        if isinstance(cfp, dict):
            tz = ZoneInfo(conf["timezone"])
            if "opens" in cfp:
                fields["cfp_opens_at"] = _start_of(cfp["opens"], tz)
            if "closes" in cfp:
                fields["cfp_closes_at"] = _end_of(cfp["closes"], tz)

        existing = Conference.objects.filter(slug=slug).first()
        if existing and not update:
            raise CommandError(f"Conference with slug '{slug}' already exists. Use --update to update it.")

        if existing:
            for attr, value in fields.items():
                setattr(existing, attr, value)
            existing.save()
            self.stdout.write(self.style.SUCCESS(f"  Updated conference: {existing.name}"))
            return existing

        conference = Conference.objects.create(slug=slug, **fields)
        self.stdout.write(self.style.SUCCESS(f"  Created conference: {conference.name}"))
        return conference

    def _bootstrap_stages(
        self,
        conference: Conference,
        stages_data: list[dict[str, Any]],
        tz_name: str,
        *,
        update: bool,
    ) -> tuple[list[PricingStage], list[PricingStage]]:
        """Create or update pricing stages, matched by stage code.

        Stage ``end`` dates are exclusive: a stage ending 2026-01-01 stops
        selling at midnight that day. Priority defaults to file order.
        """
        tz = ZoneInfo(tz_name)
        created: list[PricingStage] = []
        updated: list[PricingStage] = []

        for position, stage_data in enumerate(stages_data):
            code = stage_data["stage"]
            fields = _map_fields(stage_data, _STAGE_FIELD_MAP)
            fields.pop("stage")
            fields.setdefault("priority", position)
            fields["starts_at"] = _start_of(stage_data["start"], tz)
            fields["ends_at"] = _start_of(stage_data["end"], tz)

            existing = PricingStage.objects.filter(conference=conference, stage=code).first()
            if existing and update:
                for attr, value in fields.items():
                    setattr(existing, attr, value)
                existing.save()
                self.stdout.write(self.style.SUCCESS(f"  Updated stage: {existing.label}"))
                updated.append(existing)
            elif existing:
                self.stdout.write(self.style.WARNING(f"  Stage '{code}' already exists for this conference, skipping."))
            else:
                stage = PricingStage.objects.create(conference=conference, stage=code, **fields)
                self.stdout.write(self.style.SUCCESS(f"  Created stage: {stage.label}"))
                created.append(stage)

        return created, updated

    def _bootstrap_tickets(
        self,
        conference: Conference,
        tickets_data: list[dict[str, Any]],
        tz_name: str,
        *,
        update: bool,
    ) -> tuple[list[TicketType], list[TicketType]]:
        """Create or update TicketType records, linking each to its pricing stage."""
        stages = {stage.stage: stage for stage in PricingStage.objects.filter(conference=conference)}
        created: list[TicketType] = []
        updated_list: list[TicketType] = []

        for position, ticket_data in enumerate(tickets_data):
            slug = ticket_data["slug"]
            fields = _map_fields(ticket_data, _TICKET_FIELD_MAP)
            fields.pop("slug", None)
            fields["order"] = position
            fields["stage"] = stages.get(ticket_data["stage"]) if ticket_data.get("stage") else None
            fields.update(_parse_availability(ticket_data, tz_name))

            existing = TicketType.objects.filter(conference=conference, slug=slug).first()
            if existing and update:
                for attr, value in fields.items():
                    setattr(existing, attr, value)
                existing.save()
                self.stdout.write(self.style.SUCCESS(f"  Updated ticket: {existing.name}"))
                updated_list.append(existing)
            elif existing:
                self.stdout.write(
                    self.style.WARNING(f"  Ticket '{slug}' already exists for this conference, skipping.")
                )
            else:
                ticket = TicketType.objects.create(conference=conference, slug=slug, **fields)
                self.stdout.write(self.style.SUCCESS(f"  Created ticket: {ticket.name}"))
                created.append(ticket)

        return created, updated_list

    def _bootstrap_addons(
        self,
        conference: Conference,
        addons_data: list[dict[str, Any]],
        tz_name: str,
        *,
        update: bool,
    ) -> tuple[list[AddOn], list[AddOn]]:
        """Create or update AddOn records and wire their required tickets.

        Raises:
            CommandError: If an add-on requires an unknown ticket slug.
        """
        created: list[AddOn] = []
        updated_list: list[AddOn] = []

        for position, addon_data in enumerate(addons_data):
            slug = addon_data["slug"]
            fields = _map_fields(addon_data, _ADDON_FIELD_MAP)
            fields.pop("slug", None)
            fields["order"] = position
            fields.update(_parse_availability(addon_data, tz_name))

            target: AddOn | None = None
            existing = AddOn.objects.filter(conference=conference, slug=slug).first()
            if existing and update:
                for attr, value in fields.items():
                    setattr(existing, attr, value)
                existing.save()
                self.stdout.write(self.style.SUCCESS(f"  Updated add-on: {existing.name}"))
                updated_list.append(existing)
                target = existing
            elif existing:
                self.stdout.write(
                    self.style.WARNING(f"  Add-on '{slug}' already exists for this conference, skipping.")
                )
            else:
                target = AddOn.objects.create(conference=conference, slug=slug, **fields)
                self.stdout.write(self.style.SUCCESS(f"  Created add-on: {target.name}"))
                created.append(target)

            requires_slugs = addon_data.get("requires")
            if requires_slugs is not None and target is not None:
                found = TicketType.objects.filter(conference=conference, slug__in=requires_slugs)
                missing_slugs = sorted(set(requires_slugs) - set(found.values_list("slug", flat=True)))
                if missing_slugs:
                    missing = ", ".join(missing_slugs)
                    raise CommandError(f"Add-on '{slug}' references unknown required ticket slug(s): {missing}")
                target.requires_ticket_types.set(found)

        return created, updated_list

    def _bootstrap_vouchers(
        self,
        conference: Conference,
        vouchers_data: list[dict[str, Any]],
        tz_name: str,
        *,
        update: bool,
    ) -> tuple[list[Voucher], list[Voucher]]:
        """Create or update vouchers, matched by code.

        Raises:
            CommandError: If a voucher type is unknown or a voucher is scoped
                to an unknown ticket slug.
        """
        tz = ZoneInfo(tz_name)
        created: list[Voucher] = []
        updated_list: list[Voucher] = []

        for voucher_data in vouchers_data:
            code = voucher_data["code"]
            fields = _map_fields(voucher_data, _VOUCHER_FIELD_MAP)
            fields.pop("code")
            if fields["voucher_type"] not in Voucher.VoucherType.values:
                raise CommandError(f"Voucher '{code}' has unknown type '{fields['voucher_type']}'.")
            fields.setdefault("discount_value", Decimal("0.00"))
            if "valid_from" in voucher_data:
                fields["valid_from"] = _start_of(voucher_data["valid_from"], tz)
            if "valid_until" in voucher_data:
                fields["valid_until"] = _end_of(voucher_data["valid_until"], tz)

            target: Voucher | None = None
            existing = Voucher.objects.filter(conference=conference, code=code).first()
            if existing and update:
                for attr, value in fields.items():
                    setattr(existing, attr, value)
                existing.save()
                self.stdout.write(self.style.SUCCESS(f"  Updated voucher: {code}"))
                updated_list.append(existing)
                target = existing
            elif existing:
                self.stdout.write(self.style.WARNING(f"  Voucher '{code}' already exists, skipping."))
            else:
                target = Voucher.objects.create(conference=conference, code=code, **fields)
                self.stdout.write(self.style.SUCCESS(f"  Created voucher: {code}"))
                created.append(target)

            ticket_slugs = voucher_data.get("tickets")
            if ticket_slugs is not None and target is not None:
                found = TicketType.objects.filter(conference=conference, slug__in=ticket_slugs)
                missing_slugs = sorted(set(ticket_slugs) - set(found.values_list("slug", flat=True)))
                if missing_slugs:
                    missing = ", ".join(missing_slugs)
                    raise CommandError(f"Voucher '{code}' references unknown ticket slug(s): {missing}")
                target.applicable_ticket_types.set(found)

        return created, updated_list

    def _print_dry_run(self, conf: dict[str, Any]) -> None:
        """Print a preview of what would be created without touching the database."""
        self.stdout.write(self.style.MIGRATE_HEADING("\n[DRY RUN] No database changes will be made.\n"))
        self.stdout.write(self.style.MIGRATE_HEADING("Conference:"))
        self.stdout.write(f"  Name:       {conf['name']}")
        self.stdout.write(f"  Slug:       {conf['slug']}")
        self.stdout.write(f"  Dates:      {conf['start']} -- {conf['end']}")
        self.stdout.write(f"  Timezone:   {conf['timezone']}")
        if conf.get("venue"):
            self.stdout.write(f"  Venue:      {conf['venue']}")

        if conf["stages"]:
            self.stdout.write(self.style.MIGRATE_HEADING(f"\nStages ({len(conf['stages'])}):"))
            for idx, stage in enumerate(conf["stages"]):
                limit = f" (stock {stage['stock_limit']})" if stage.get("stock_limit") else ""
                self.stdout.write(f"  [{idx}] {stage['stage']} {stage['start']} -- {stage['end']}{limit}")

        if conf["tickets"]:
            self.stdout.write(self.style.MIGRATE_HEADING(f"\nTickets ({len(conf['tickets'])}):"))
            for idx, ticket in enumerate(conf["tickets"]):
                stage = f" [{ticket['stage']}]" if ticket.get("stage") else ""
                self.stdout.write(f"  [{idx}] {ticket['name']} ({ticket['slug']}) {ticket['price']}{stage}")

        if conf["addons"]:
            self.stdout.write(self.style.MIGRATE_HEADING(f"\nAdd-ons ({len(conf['addons'])}):"))
            for idx, addon in enumerate(conf["addons"]):
                self.stdout.write(f"  [{idx}] {addon['name']} ({addon['slug']}) {addon['price']}")

        if conf["vouchers"]:
            self.stdout.write(self.style.MIGRATE_HEADING(f"\nVouchers ({len(conf['vouchers'])}):"))
            for idx, voucher in enumerate(conf["vouchers"]):
                self.stdout.write(f"  [{idx}] {voucher['code']} ({voucher['type']} {voucher.get('value', '')})")

        self.stdout.write("")

    def _print_summary(
        self,
        conference: Conference,
        results: dict[str, tuple[list[Any], list[Any]]],
        verbosity: int,
    ) -> None:
        """Print a summary of all bootstrap operations performed."""
        self.stdout.write("")
        self.stdout.write(self.style.MIGRATE_HEADING("Bootstrap summary:"))
        self.stdout.write(f"  Conference:        {conference.name} ({conference.slug})")
        for label, (created, updated) in results.items():
            self.stdout.write(f"  {label.capitalize()} created:  {len(created)}")
            self.stdout.write(f"  {label.capitalize()} updated:  {len(updated)}")

        if verbosity >= 2:
            for created, updated in results.values():
                for item in created:
                    self.stdout.write(f"    + {item}")
                for item in updated:
                    self.stdout.write(f"    ~ {item}")

        self.stdout.write(self.style.SUCCESS("\nDone."))
