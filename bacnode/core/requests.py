"""Service requests handed to a transport.

The transport owns the wire encoding; these are the decoded request shapes
the node builds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from bacnode.core.model import ObjectIdentifier


@dataclass(frozen=True)
class WhoIs:
    low_limit: int | None = None
    high_limit: int | None = None

    def accepts(self, instance: int) -> bool:
        if self.low_limit is None or self.high_limit is None:
            return True
        return self.low_limit <= instance <= self.high_limit


@dataclass(frozen=True)
class WhoHas:
    low_limit: int
    high_limit: int
    object_identifier: ObjectIdentifier | None = None
    object_name: str | None = None


@dataclass(frozen=True)
class ReadPropertyMultiple:
    object_identifier: ObjectIdentifier
    property_ids: tuple[str, ...]


@dataclass(frozen=True)
class WriteProperty:
    object_identifier: ObjectIdentifier
    property_id: str
    value: Any


@dataclass(frozen=True)
class CreateObject:
    object_identifier: ObjectIdentifier
    properties: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DeleteObject:
    object_identifier: ObjectIdentifier


@dataclass(frozen=True)
class SubscribeCOV:
    process_identifier: int
    object_identifier: ObjectIdentifier
    confirmed: bool = False
    lifetime_seconds: int = 60
