from __future__ import annotations

import re
from dataclasses import dataclass, fields
from typing import Any


class _Sentinel:
    __slots__ = ("_name",)

    def __init__(self, name: str) -> None:
        self._name = name

    def __repr__(self) -> str:
        return self._name

    def __bool__(self) -> bool:
        return False


# Patch field was not supplied by the caller.
UNSET: Any = _Sentinel("UNSET")

# Returned by store `update()` calls when the patch carried no fields; nothing was written.
NOTHING_CHANGED: Any = _Sentinel("NOTHING_CHANGED")


@dataclass
class Patch:
    """
    Base for partial-update structures. Fields default to UNSET; only supplied
    fields are applied.
    """

    def changes(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not UNSET}

    def is_empty(self) -> bool:
        return not self.changes()


def clean_str(value: Any) -> str:
    """Trim a raw form/JSON value to a string ('' for None)."""
    if value is None:
        return ""
    return str(value).strip()


def parse_int(value: Any) -> int | None:
    """Parse an integer from form/JSON input. Blank → None; garbage → ValueError."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    v = str(value).strip()
    if not v:
        return None
    return int(v)


def parse_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def derive_dropdown_value(label: str) -> str:
    """'IT Department' -> 'it-department'."""
    return re.sub(r"\s+", "-", label.strip().lower())


def is_valid_email(email: str) -> bool:
    pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
    return bool(re.match(pattern, email))


def request_payload() -> dict[str, Any]:
    """JSON body if present, form fields otherwise."""
    from flask import request

    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()
