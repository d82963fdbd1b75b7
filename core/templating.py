"""
Template placeholder resolution.

Two placeholder styles are understood in the same pass:

- ``{{student.firstName}}`` / ``{{firstName}}`` (notification templates)
- ``{studentName}`` (older appointment templates)

Dotted names are paths into the variable tree. Bare names go through the
flat alias table first, so templates written before variables were nested
keep working. Anything that does not resolve to a scalar is left exactly as
written, which makes missing fields obvious in rendered test fixtures.

Everything here is pure: no I/O, no clock, no logging.
"""

import html
import re
from collections.abc import Mapping
from decimal import Decimal
from types import MappingProxyType
from typing import Any

FLAT_ALIASES: Mapping[str, str] = MappingProxyType({
    # Student
    "firstName": "student.firstName",
    "lastName": "student.lastName",
    "name": "student.name",
    "email": "student.email",
    "phone": "student.phone",
    "address": "student.address",
    "city": "student.city",
    "state": "student.state",
    "zipCode": "student.zipCode",
    "licenseNumber": "student.licenseNumber",
    "licenseExpiration": "student.licenseExpiration",
    # Course
    "courseName": "course.name",
    "courseDescription": "course.description",
    "coursePrice": "course.price",
    "courseCategory": "course.category",
    # Schedule
    "startDate": "schedule.startDate",
    "endDate": "schedule.endDate",
    "startTime": "schedule.startTime",
    "endTime": "schedule.endTime",
    "location": "schedule.location",
    "maxSpots": "schedule.maxSpots",
    "availableSpots": "schedule.availableSpots",
    "dayOfWeek": "schedule.dayOfWeek",
    "arrivalTime": "schedule.arrivalTime",
    "rangeName": "schedule.rangeName",
    "classroomName": "schedule.classroomName",
    "googleMapsLink": "schedule.googleMapsLink",
    # Enrollment
    "paymentStatus": "enrollment.paymentStatus",
    "amountPaid": "enrollment.amountPaid",
    "remainingBalance": "enrollment.remainingBalance",
    "registrationDate": "enrollment.registrationDate",
    # Appointment templates ({studentName} style)
    "studentName": "student.name",
    "studentFirstName": "student.firstName",
    "studentLastName": "student.lastName",
    "studentEmail": "student.email",
    "appointmentType": "appointment.type",
    "appointmentDate": "appointment.date",
    "appointmentTime": "appointment.time",
    "appointmentDuration": "appointment.duration",
    "instructorName": "instructor.name",
    "price": "appointment.price",
    # System
    "companyName": "system.companyName",
    "companyPhone": "system.companyPhone",
    "companyEmail": "system.companyEmail",
    "website": "system.website",
    "websiteUrl": "system.websiteUrl",
    "currentDate": "system.currentDate",
})

# Double-brace alternative comes first so "{{x}}" is never read as "{" + "{x}" + "}".
_PLACEHOLDER = re.compile(r"\{\{([^{}]+)\}\}|\{([^{}]+)\}")

_MISSING = object()


def _lookup_path(ctx: Any, path: str) -> Any:
    current = ctx
    for key in path.split("."):
        if not isinstance(current, Mapping):
            return _MISSING
        current = current.get(key, _MISSING)
        if current is _MISSING:
            return _MISSING
    return current


def lookup(ctx: Mapping[str, Any], name: str) -> Any:
    """
    Find the value a placeholder name refers to.

    Returns the raw value, or a private sentinel when nothing usable exists.
    Use `resolve` unless you need the untouched value.
    """
    name = name.strip()
    if not name:
        return _MISSING

    if "." in name:
        value = _lookup_path(ctx, name)
    else:
        alias = FLAT_ALIASES.get(name)
        value = _lookup_path(ctx, alias) if alias is not None else _lookup_path(ctx, name)

    # Sections are not values
    if value is None or isinstance(value, Mapping):
        return _MISSING
    return value


def stringify(value: Any) -> str:
    """Render a scalar the way template authors expect to see it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, Decimal):
        return format(value.normalize(), "f") if value == value.to_integral() else str(value)
    return str(value)


def resolve(body: str, ctx: Mapping[str, Any]) -> str:
    """
    Substitute every placeholder in body from ctx.

    Args:
        body: Raw template text
        ctx: VariableContext or any nested mapping of sections

    Returns:
        Resolved text. Unresolvable placeholders are kept verbatim and text
        coming from substituted values is never scanned again.
    """
    if not body:
        return ""

    def replace(match: re.Match) -> str:
        name = match.group(1) if match.group(1) is not None else match.group(2)
        value = lookup(ctx, name)
        if value is _MISSING:
            return match.group(0)
        return stringify(value)

    return _PLACEHOLDER.sub(replace, body)


def unresolved_placeholders(text: str) -> list[str]:
    """Placeholders still present in already-resolved text, in order of appearance."""
    return [match.group(0) for match in _PLACEHOLDER.finditer(text or "")]


def strip_html(text: str) -> str:
    """
    Flatten HTML to plain text for SMS.

    <br> becomes a newline, </p> a blank line, other tags vanish and
    entities are decoded. Runs of blank lines collapse to one.
    """
    if not text:
        return ""
    text = re.sub(r"<br\s*/?>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"</p>", "\n\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]*>", "", text)
    text = html.unescape(text).replace("\xa0", " ")
    text = re.sub(r"\n\s*\n\s*\n", "\n\n", text)
    return text.strip()


def available_variables() -> dict[str, list[str]]:
    """Variables template authors can use, grouped by section (for editor help)."""
    sections: dict[str, list[str]] = {}
    for dotted in FLAT_ALIASES.values():
        section, field = dotted.split(".", 1)
        fields = sections.setdefault(section, [])
        if field not in fields:
            fields.append(field)
    return sections
