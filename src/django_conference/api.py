"""Shared plumbing for the JSON endpoints.

Every endpoint answers with JSON. Errors always take the shape
``{"error": message}`` with an HTTP status code; form validation failures
additionally carry a ``fields`` mapping of per-field messages.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.core.exceptions import PermissionDenied, ValidationError
from django.http import Http404, HttpRequest, HttpResponse, JsonResponse

if TYPE_CHECKING:
    from django import forms


class ApiError(Exception):
    """An error that maps directly onto an HTTP status code."""

    def __init__(self, message: str, status: int = 400, *, fields: dict[str, list[str]] | None = None) -> None:
        """Store the message, status and optional per-field errors."""
        super().__init__(message)
        self.message = message
        self.status = status
        self.fields = fields


def json_error(message: str, status: int = 400, *, fields: dict[str, list[str]] | None = None) -> JsonResponse:
    """Build an ``{"error": message}`` response."""
    payload: dict[str, Any] = {"error": message}
    if fields:
        payload["fields"] = fields
    return JsonResponse(payload, status=status)


def validation_message(exc: ValidationError) -> str:
    """Flatten a ``ValidationError`` into a single user-facing message."""
    return " ".join(str(m) for m in exc.messages) or "Invalid request."


def form_errors(form: "forms.BaseForm") -> ApiError:
    """Convert a bound, invalid form into an :class:`ApiError`."""
    fields = {name: [str(e) for e in errors] for name, errors in form.errors.items()}
    first = next(iter(fields.values()), ["Validation failed"])[0]
    return ApiError(first, 400, fields=fields)


def serialize(value: object) -> object:
    """Convert decimals and dates into JSON-friendly primitives."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [serialize(v) for v in value]
    return value


class JsonApiMixin:
    """Translate service-layer exceptions into JSON error responses.

    Place this mixin first in the MRO so it wraps every other mixin's
    ``dispatch`` (conference resolution, feature checks, permissions).
    Set ``login_required = False`` for public endpoints.
    """

    login_required: bool = True
    request: HttpRequest

    def dispatch(self, request: HttpRequest, *args: Any, **kwargs: Any) -> HttpResponse:
        """Run the view and map raised errors to status codes."""
        if self.login_required and not request.user.is_authenticated:
            return json_error("Unauthorized", 401)
        try:
            return super().dispatch(request, *args, **kwargs)  # type: ignore[misc]
        except ApiError as exc:
            return json_error(exc.message, exc.status, fields=exc.fields)
        except ValidationError as exc:
            return json_error(validation_message(exc), 400)
        except Http404:
            return json_error("Not found", 404)
        except PermissionDenied as exc:
            return json_error(str(exc) or "Forbidden", 403)

    def http_method_not_allowed(self, request: HttpRequest, *args: Any, **kwargs: Any) -> HttpResponse:  # noqa: ARG002
        """Answer disallowed methods with a JSON 405."""
        response = json_error("Method not allowed", 405)
        response["Allow"] = ", ".join(m.upper() for m in self._allowed_methods())  # type: ignore[attr-defined]
        return response

    def parse_body(self) -> dict[str, Any]:
        """Decode the JSON request body, treating an empty body as ``{}``.

        Raises:
            ApiError: If the body is not a JSON object.
        """
        raw = self.request.body
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise ApiError("Invalid JSON body", 400) from None
        if not isinstance(data, dict):
            raise ApiError("JSON body must be an object", 400)
        return data

    def bind_form(self, form_class: "type[forms.Form]", data: dict[str, Any] | None = None, **kwargs: Any) -> Any:
        """Validate *data* with *form_class* and return ``cleaned_data``.

        Raises:
            ApiError: With per-field messages when the form is invalid.
        """
        form = form_class(data=self.parse_body() if data is None else data, **kwargs)
        if not form.is_valid():
            raise form_errors(form)
        return form.cleaned_data
