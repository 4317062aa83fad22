"""Resolution of client supplied identifiers to canonical store keys.

Clients may send no ``id`` at all, an id previously minted by this service
(32 hexadecimal characters), or any other opaque string such as a UUID
generated in the browser or an identifier imported from an older system.
Every write path resolves the incoming value exactly once with
:func:`resolve_id` and uses the resulting :class:`CanonicalId` for all
lookups, so creating and updating an entity are the same upsert.
"""
from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from enum import Enum

_NATIVE_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{32}$")


class IdKind(str, Enum):
    NATIVE = "native"
    EXTERNAL = "external"


@dataclass(frozen=True)
class CanonicalId:
    """Identifier an entity is stored and looked up under."""

    value: str
    kind: IdKind

    def __str__(self) -> str:
        return self.value


def is_native_id(value: str) -> bool:
    return bool(_NATIVE_ID_PATTERN.match(value))


def new_id() -> CanonicalId:
    """Mint a fresh native identifier."""

    return CanonicalId(uuid.uuid4().hex, IdKind.NATIVE)


def resolve_id(external_id: object | None) -> CanonicalId:
    """Map an optional client identifier to its canonical form.

    Absent or blank values mint a new identifier. Values in the native
    format are normalised to lower case so that differently cased
    submissions address the same entity. Anything else is kept verbatim.
    """

    if external_id is None:
        return new_id()
    text = str(external_id)
    if not text.strip():
        return new_id()
    if is_native_id(text):
        return CanonicalId(text.lower(), IdKind.NATIVE)
    return CanonicalId(text, IdKind.EXTERNAL)


__all__ = ["CanonicalId", "IdKind", "is_native_id", "new_id", "resolve_id"]
