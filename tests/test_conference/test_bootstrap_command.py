import datetime
from decimal import Decimal
from io import StringIO
from zoneinfo import ZoneInfo

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from django_conference.conference.models import Conference, PricingStage
from django_conference.registration.models import AddOn, TicketType, Voucher

FULL_CONFIG = """[conference]
name = "ZurichJS Conf 2027"
start = 2027-09-11
end = 2027-09-11
timezone = "Europe/Zurich"
venue = "Technopark"

[conference.cfp]
opens = 2027-01-01
closes = 2027-03-31

[[conference.stages]]
stage = "blind_bird"
start = 2026-11-14
end = 2027-01-01
stock_limit = 30
limited_categories = ["standard", "vip"]

[[conference.stages]]
stage = "early_bird"
start = 2027-01-01
end = 2027-05-01

[[conference.tickets]]
name = "Standard (Blind Bird)"
category = "standard"
stage = "blind_bird"
price = 195.00
quantity = 0

[[conference.tickets]]
name = "Student (Blind Bird)"
category = "student_unemployed"
stage = "blind_bird"
price = 95.00
quantity = 0
verification_required = true

[[conference.tickets]]
name = "Speaker"
price = 0
quantity = 40
voucher_required = true

[[conference.addons]]
name = "Workshop Seat"
kind = "workshop"
price = 149.00
requires = ["standard-blind-bird"]

[[conference.vouchers]]
code = "SPEAKER2027"
type = "comp"
max_uses = 40
unlocks_hidden = true
tickets = ["speaker"]
valid_until = 2027-09-10
"""


def _write_config(tmp_path, contents):
    path = tmp_path / "conference.toml"
    path.write_text(contents)
    return str(path)


def test_bootstrap_wraps_loader_errors_as_command_error(tmp_path):
    path = _write_config(
        tmp_path,
        """[conference]
name = "X"
start = 2027-05-01
end = 2027-05-03
timezone = "UTC"

stages = ["invalid"]
""",
    )

    with pytest.raises(CommandError, match=r"conference\.stages\[0\] must be a mapping"):
        call_command("bootstrap_conference", config=path)


@pytest.mark.django_db
def test_bootstrap_creates_full_conference(tmp_path):
    out = StringIO()
    call_command("bootstrap_conference", config=_write_config(tmp_path, FULL_CONFIG), stdout=out)

    conference = Conference.objects.get(slug="zurichjs-conf-2027")
    tz = ZoneInfo("Europe/Zurich")
    assert conference.venue == "Technopark"
    assert conference.cfp_opens_at == datetime.datetime(2027, 1, 1, tzinfo=tz)
    assert conference.cfp_closes_at == datetime.datetime(2027, 3, 31, 23, 59, 59, tzinfo=tz)

    blind = PricingStage.objects.get(conference=conference, stage="blind_bird")
    assert blind.priority == 0
    assert blind.stock_limit == 30
    assert blind.limited_categories == ["standard", "vip"]
    assert blind.ends_at == datetime.datetime(2027, 1, 1, tzinfo=tz)
    assert PricingStage.objects.get(conference=conference, stage="early_bird").priority == 1

    standard = TicketType.objects.get(conference=conference, slug="standard-blind-bird")
    assert standard.stage == blind
    assert standard.price == Decimal("195.00")
    student = TicketType.objects.get(conference=conference, slug="student-blind-bird")
    assert student.category == TicketType.Category.STUDENT_UNEMPLOYED
    assert student.requires_verification is True
    speaker = TicketType.objects.get(conference=conference, slug="speaker")
    assert speaker.stage is None
    assert speaker.requires_voucher is True
    assert speaker.total_quantity == 40

    addon = AddOn.objects.get(conference=conference, slug="workshop-seat")
    assert addon.kind == AddOn.Kind.WORKSHOP
    assert list(addon.requires_ticket_types.all()) == [standard]

    voucher = Voucher.objects.get(conference=conference, code="SPEAKER2027")
    assert voucher.voucher_type == Voucher.VoucherType.COMP
    assert voucher.unlocks_hidden_tickets is True
    assert list(voucher.applicable_ticket_types.all()) == [speaker]

    output = out.getvalue()
    assert "Created conference: ZurichJS Conf 2027" in output
    assert "Tickets created:  3" in output


@pytest.mark.django_db
def test_bootstrap_refuses_existing_slug_without_update(tmp_path):
    path = _write_config(tmp_path, FULL_CONFIG)
    call_command("bootstrap_conference", config=path, stdout=StringIO())

    with pytest.raises(CommandError, match="already exists. Use --update"):
        call_command("bootstrap_conference", config=path, stdout=StringIO())


@pytest.mark.django_db
def test_bootstrap_update_changes_existing_records(tmp_path):
    call_command("bootstrap_conference", config=_write_config(tmp_path, FULL_CONFIG), stdout=StringIO())

    updated = FULL_CONFIG.replace('venue = "Technopark"', 'venue = "Kongresshaus"')
    updated = updated.replace("price = 195.00", "price = 210.00")
    out = StringIO()
    call_command("bootstrap_conference", config=_write_config(tmp_path, updated), update=True, stdout=out)

    conference = Conference.objects.get(slug="zurichjs-conf-2027")
    assert conference.venue == "Kongresshaus"
    assert TicketType.objects.get(conference=conference, slug="standard-blind-bird").price == Decimal("210.00")
    assert TicketType.objects.filter(conference=conference).count() == 3
    assert "Updated conference" in out.getvalue()


@pytest.mark.django_db
def test_bootstrap_dry_run_writes_nothing(tmp_path):
    out = StringIO()
    call_command("bootstrap_conference", config=_write_config(tmp_path, FULL_CONFIG), dry_run=True, stdout=out)

    assert Conference.objects.count() == 0
    output = out.getvalue()
    assert "[DRY RUN]" in output
    assert "blind_bird" in output
    assert "SPEAKER2027" in output


@pytest.mark.django_db
def test_bootstrap_rejects_unknown_voucher_type(tmp_path):
    config = FULL_CONFIG.replace('type = "comp"', 'type = "bogus"')

    with pytest.raises(CommandError, match="unknown type 'bogus'"):
        call_command("bootstrap_conference", config=_write_config(tmp_path, config), stdout=StringIO())
    assert Conference.objects.count() == 0


@pytest.mark.django_db
def test_bootstrap_rejects_addon_with_unknown_required_ticket(tmp_path):
    config = FULL_CONFIG.replace('requires = ["standard-blind-bird"]', 'requires = ["nope"]')

    with pytest.raises(CommandError, match="unknown required ticket slug"):
        call_command("bootstrap_conference", config=_write_config(tmp_path, config), stdout=StringIO())
    assert Conference.objects.count() == 0
