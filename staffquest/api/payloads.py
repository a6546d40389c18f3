"""
staffquest.api.payloads — Outcome → JSON conversion
=====================================================

Engine outcome records are frozen dataclasses with snake_case fields.  The
wire format is camelCase JSON with ISO-8601 timestamps, shared by the
game routes and the chat webhook.
"""

from __future__ import annotations

import enum
from dataclasses import fields, is_dataclass
from datetime import date, datetime
from typing import Any


def camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def to_payload(value: Any) -> Any:
    """Recursively convert outcome records into JSON-ready structures."""
    if is_dataclass(value) and not isinstance(value, type):
        return {camel(f.name): to_payload(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [to_payload(item) for item in value]
    if isinstance(value, dict):
        return {str(key): to_payload(item) for key, item in value.items()}
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value
