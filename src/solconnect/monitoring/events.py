"""
Subscription kinds and the event records built from WebSocket notifications.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar


class SubscriptionKind(str, Enum):
    """Event kinds, valued by their public names."""

    ACCOUNT_CHANGE = "accountChange"
    PROGRAM_ACCOUNT_CHANGE = "programAccountChange"
    SLOT_CHANGE = "slotChange"
    ROOT_CHANGE = "rootChange"
    LOGS = "logs"

    @property
    def subscribe_method(self) -> str:
        return f"{_WIRE_PREFIX[self]}Subscribe"

    @property
    def unsubscribe_method(self) -> str:
        return f"{_WIRE_PREFIX[self]}Unsubscribe"

    @property
    def notification_method(self) -> str:
        return f"{_WIRE_PREFIX[self]}Notification"

    @property
    def requires_address(self) -> bool:
        return self in (
            SubscriptionKind.ACCOUNT_CHANGE,
            SubscriptionKind.PROGRAM_ACCOUNT_CHANGE,
            SubscriptionKind.LOGS,
        )


_WIRE_PREFIX = {
    SubscriptionKind.ACCOUNT_CHANGE: "account",
    SubscriptionKind.PROGRAM_ACCOUNT_CHANGE: "program",
    SubscriptionKind.SLOT_CHANGE: "slot",
    SubscriptionKind.ROOT_CHANGE: "root",
    SubscriptionKind.LOGS: "logs",
}

# Python field name -> record key, where snake_case to camelCase is not enough
_RENAMES = {"account": "accountId"}


def _camel(name: str) -> str:
    if name in _RENAMES:
        return _RENAMES[name]
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SubscriptionEvent:
    """Fields shared by every event."""

    kind: ClassVar[SubscriptionKind]

    subscription_id: int
    timestamp: datetime = field(default_factory=utc_now, kw_only=True)

    def to_dict(self) -> dict[str, Any]:
        record: dict[str, Any] = {"event": self.kind.value}
        for item in fields(self):
            value = getattr(self, item.name)
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, tuple):
                value = list(value)
            record[_camel(item.name)] = value
        return record


@dataclass(frozen=True)
class AccountChangeEvent(SubscriptionEvent):
    kind: ClassVar[SubscriptionKind] = SubscriptionKind.ACCOUNT_CHANGE

    address: str
    lamports: int
    owner: str
    executable: bool
    rent_epoch: int
    slot: int | None = None


@dataclass(frozen=True)
class ProgramAccountChangeEvent(SubscriptionEvent):
    kind: ClassVar[SubscriptionKind] = SubscriptionKind.PROGRAM_ACCOUNT_CHANGE

    program_id: str
    account: str
    lamports: int
    owner: str
    slot: int | None = None


@dataclass(frozen=True)
class SlotChangeEvent(SubscriptionEvent):
    kind: ClassVar[SubscriptionKind] = SubscriptionKind.SLOT_CHANGE

    slot: int
    parent: int
    root: int


@dataclass(frozen=True)
class RootChangeEvent(SubscriptionEvent):
    kind: ClassVar[SubscriptionKind] = SubscriptionKind.ROOT_CHANGE

    root: int


@dataclass(frozen=True)
class LogsEvent(SubscriptionEvent):
    kind: ClassVar[SubscriptionKind] = SubscriptionKind.LOGS

    program_id: str
    signature: str
    logs: tuple[str, ...]
    err: Any = None
    slot: int | None = None


def _slot(result: dict[str, Any]) -> int | None:
    return (result.get("context") or {}).get("slot")


def build_event(
    kind: SubscriptionKind,
    subscription_id: int,
    address: str | None,
    result: Any,
) -> SubscriptionEvent:
    """Turn the `result` member of a notification into an event record.

    Raises:
        KeyError, TypeError: If the payload does not have the expected shape
    """
    if kind is SubscriptionKind.ACCOUNT_CHANGE:
        value = result["value"]
        return AccountChangeEvent(
            subscription_id,
            address=address,
            lamports=value["lamports"],
            owner=value["owner"],
            executable=value["executable"],
            rent_epoch=value["rentEpoch"],
            slot=_slot(result),
        )
    if kind is SubscriptionKind.PROGRAM_ACCOUNT_CHANGE:
        value = result["value"]
        return ProgramAccountChangeEvent(
            subscription_id,
            program_id=address,
            account=value["pubkey"],
            lamports=value["account"]["lamports"],
            owner=value["account"]["owner"],
            slot=_slot(result),
        )
    if kind is SubscriptionKind.SLOT_CHANGE:
        return SlotChangeEvent(
            subscription_id,
            slot=result["slot"],
            parent=result["parent"],
            root=result["root"],
        )
    if kind is SubscriptionKind.ROOT_CHANGE:
        return RootChangeEvent(subscription_id, root=int(result))

    value = result["value"]
    return LogsEvent(
        subscription_id,
        program_id=address,
        signature=value["signature"],
        logs=tuple(value.get("logs") or ()),
        err=value.get("err"),
        slot=_slot(result),
    )
