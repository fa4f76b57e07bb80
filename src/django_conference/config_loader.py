"""TOML loader for conference bootstrap configuration.

Loads and validates a conference TOML file so that a conference, its pricing
stages, ticket types, add-ons and vouchers can be created programmatically.

Example::

    [conference]
    name = "ZurichJS Conf 2026"
    start = 2026-09-11
    end = 2026-09-11
    timezone = "Europe/Zurich"

    [[conference.stages]]
    stage = "blind_bird"
    start = 2025-11-14
    end = 2026-01-01
    stock_limit = 30
    limited_categories = ["standard", "vip"]

    [[conference.tickets]]
    name = "Standard (Blind Bird)"
    category = "standard"
    stage = "blind_bird"
    price = 195.00
    quantity = 0
"""

import re
import tomllib
from decimal import Decimal
from pathlib import Path
from typing import Any

_REQUIRED_CONFERENCE_FIELDS: set[str] = {"name", "start", "end", "timezone"}
_REQUIRED_STAGE_FIELDS: set[str] = {"stage", "start", "end"}
_REQUIRED_TICKET_FIELDS: set[str] = {"name", "price", "quantity"}
_REQUIRED_ADDON_FIELDS: set[str] = {"name", "price"}
_REQUIRED_VOUCHER_FIELDS: set[str] = {"code", "type"}

STAGE_CODES: frozenset[str] = frozenset({"blind_bird", "early_bird", "standard", "late_bird"})
TICKET_CATEGORIES: frozenset[str] = frozenset({"standard", "student_unemployed", "vip"})

_SLUG_RE = re.compile(r"[^\w\s-]")
_WHITESPACE_RE = re.compile(r"[-\s]+")


def _slugify(value: str) -> str:
    """Convert a string to a lowercase, hyphen-separated slug."""
    value = _SLUG_RE.sub("", value.lower())
    return _WHITESPACE_RE.sub("-", value).strip("-")


def _validate_mapping(mapping: object, required: set[str], label: str) -> None:
    """Validate that *mapping* is a dict containing all *required* keys.

    Raises:
        TypeError: If *mapping* is not a dict.
        ValueError: If *mapping* is missing required keys.
    """
    if not isinstance(mapping, dict):
        msg = f"{label} must be a mapping, got {type(mapping).__name__}"
        raise TypeError(msg)
    missing = required - mapping.keys()
    if missing:
        msg = f"{label} is missing required fields: {', '.join(sorted(missing))}"
        raise ValueError(msg)


def _validate_unique(items: list[dict[str, Any]], key: str, label: str) -> None:
    """Ensure each item has a unique, non-empty string under *key*."""
    seen: set[str] = set()
    duplicates: set[str] = set()

    for idx, item in enumerate(items):
        value = item.get(key)
        if not isinstance(value, str) or not value:
            msg = f"{label}[{idx}].{key} must be a non-empty string"
            raise ValueError(msg)
        if value in seen:
            duplicates.add(value)
        seen.add(value)

    if duplicates:
        msg = f"{label} has duplicate {key}s: {', '.join(sorted(duplicates))}"
        raise ValueError(msg)


def _validate_list(
    conf: dict[str, Any],
    key: str,
    required_fields: set[str],
    *,
    slugged: bool = True,
) -> list[dict[str, Any]]:
    """Validate an optional list of mappings and derive missing slugs.

    Returns:
        The validated list (empty when the key is absent).
    """
    label = f"conference.{key}"
    items = conf.get(key)
    if items is None:
        conf[key] = []
        return conf[key]
    if not isinstance(items, list):
        msg = f"{label} must be a list"
        raise ValueError(msg)

    for idx, item in enumerate(items):
        _validate_mapping(item, required_fields, f"{label}[{idx}]")
        if slugged and "slug" not in item:
            item["slug"] = _slugify(item["name"])

    if slugged:
        _validate_unique(items, "slug", label)
    return items


def _validate_stages(stages: list[dict[str, Any]]) -> None:
    for idx, stage in enumerate(stages):
        if stage["stage"] not in STAGE_CODES:
            msg = f"conference.stages[{idx}].stage must be one of: {', '.join(sorted(STAGE_CODES))}"
            raise ValueError(msg)
        if stage["end"] <= stage["start"]:
            msg = f"conference.stages[{idx}] must end after it starts"
            raise ValueError(msg)
    _validate_unique(stages, "stage", "conference.stages")


def _validate_tickets(tickets: list[dict[str, Any]], stage_codes: set[str]) -> None:
    for idx, ticket in enumerate(tickets):
        category = ticket.setdefault("category", "standard")
        if category not in TICKET_CATEGORIES:
            msg = f"conference.tickets[{idx}].category must be one of: {', '.join(sorted(TICKET_CATEGORIES))}"
            raise ValueError(msg)
        stage = ticket.get("stage")
        if stage is not None and stage not in stage_codes:
            msg = f"conference.tickets[{idx}].stage '{stage}' is not defined in conference.stages"
            raise ValueError(msg)


def load_conference_config(path: str | Path) -> dict[str, Any]:
    """Load and validate a conference TOML configuration file.

    Args:
        path: Filesystem path to the TOML file.

    Returns:
        The ``conference`` mapping from the parsed TOML, with native types
        (``datetime.date`` for dates, ``Decimal`` for prices). Slugs are
        auto-generated from ``name`` when not explicitly provided, and the
        ``stages``, ``tickets``, ``addons`` and ``vouchers`` keys are always
        present as lists.

    Raises:
        FileNotFoundError: If *path* does not exist.
        TypeError: If a table has the wrong shape.
        ValueError: If required keys or fields are missing, values are out
            of range, or the file is not valid TOML.
    """
    path = Path(path)
    if not path.exists():
        msg = f"Conference config file not found: {path}"
        raise FileNotFoundError(msg)

    with path.open("rb") as fh:
        try:
            data: dict[str, Any] = tomllib.load(fh, parse_float=Decimal)
        except tomllib.TOMLDecodeError as exc:
            msg = f"Invalid TOML in {path}: {exc}"
            raise ValueError(msg) from exc

    if "conference" not in data:
        msg = "Missing required [conference] table in config file"
        raise ValueError(msg)

    conf = data["conference"]
    _validate_mapping(conf, _REQUIRED_CONFERENCE_FIELDS, "conference")
    if "slug" not in conf:
        conf["slug"] = _slugify(conf["name"])

    stages = _validate_list(conf, "stages", _REQUIRED_STAGE_FIELDS, slugged=False)
    _validate_stages(stages)
    tickets = _validate_list(conf, "tickets", _REQUIRED_TICKET_FIELDS)
    _validate_tickets(tickets, {s["stage"] for s in stages})
    _validate_list(conf, "addons", _REQUIRED_ADDON_FIELDS)
    vouchers = _validate_list(conf, "vouchers", _REQUIRED_VOUCHER_FIELDS, slugged=False)
    _validate_unique(vouchers, "code", "conference.vouchers")

    return conf
