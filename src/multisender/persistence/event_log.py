"""Append-only event log — the notifications every state change emits.

Each accepted administrative or paying operation appends one event
carrying the literal values it changed. The log serves as:
1. The notification stream for external observers.
2. The audit trail for third-party verification.
3. The source for state reconstruction (see persistence.replay).

Events from an operation that fails are never appended: the service
records them only after every other effect has been applied.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional


class EventKind(str, enum.Enum):
    """Classification of MultiSender events."""
    # Catalog and fee schedule
    PACKAGE_UPDATED = "package_updated"
    PER_RECIPIENT_FEE_UPDATED = "per_recipient_fee_updated"
    MINIMUM_FEE_UPDATED = "minimum_fee_updated"
    FEE_RECEIVER_UPDATED = "fee_receiver_updated"
    # Membership
    MEMBERSHIP_GRANTED = "membership_granted"
    MEMBERSHIP_REVOKED = "membership_revoked"
    # Value movement
    BATCH_SENT = "batch_sent"
    ASSET_RECOVERED = "asset_recovered"
    NATIVE_RECOVERED = "native_recovered"
    # Ownership
    OWNERSHIP_TRANSFERRED = "ownership_transferred"


def _canonical_hash(
    event_id: str,
    event_kind: str,
    timestamp: int,
    actor_id: str,
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "event_id": event_id,
            "event_kind": event_kind,
            "timestamp": timestamp,
            "actor_id": actor_id,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class EventRecord:
    """A single immutable event.

    Amounts in the payload are decimal strings so the record survives a
    JSON round trip without losing precision.
    """
    event_id: str
    event_kind: EventKind
    timestamp: int
    actor_id: str
    payload: dict[str, Any]
    event_hash: str

    @staticmethod
    def create(
        event_id: str,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp: int,
    ) -> EventRecord:
        """Create a new event record with computed hash."""
        return EventRecord(
            event_id=event_id,
            event_kind=event_kind,
            timestamp=timestamp,
            actor_id=actor_id,
            payload=payload,
            event_hash=_canonical_hash(
                event_id, event_kind.value, timestamp, actor_id, payload,
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_kind": self.event_kind.value,
            "timestamp": self.timestamp,
            "actor_id": self.actor_id,
            "payload": self.payload,
            "event_hash": self.event_hash,
        }


class EventLog:
    """Append-only event log with optional JSONL persistence.

    Events can only be appended, never modified or deleted. When a
    storage path is given, each event is written as one JSON line and
    the file is verified and reloaded on construction.
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: list[EventRecord] = []
        self._event_ids: set[str] = set()
        self._storage_path = storage_path

        if storage_path is not None and storage_path.exists():
            self._load_from_file(storage_path)

    def append(self, event: EventRecord) -> None:
        """Append an event.

        Raises ValueError on a duplicate event_id and OSError if the
        backing file cannot be written; in both cases the log is unchanged.
        """
        if event.event_id in self._event_ids:
            raise ValueError(f"Duplicate event ID: {event.event_id}")

        if self._storage_path is not None:
            with self._storage_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(event.to_dict(), sort_keys=True, ensure_ascii=False) + "\n")

        self._events.append(event)
        self._event_ids.add(event.event_id)

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        """Return events, optionally filtered by kind."""
        if kind is None:
            return list(self._events)
        return [e for e in self._events if e.event_kind == kind]

    def events_for(self, account: str) -> list[EventRecord]:
        """Events whose payload names the account."""
        return [e for e in self._events if e.payload.get("account") == account]

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    def _load_from_file(self, path: Path) -> None:
        """Load events with integrity verification.

        Fail-closed: a tampered record (hash mismatch) or a duplicate
        event ID aborts the load.
        """
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)
                event_id = data["event_id"]

                if event_id in self._event_ids:
                    raise ValueError(
                        f"Duplicate event ID on recovery (line {line_num}): {event_id}"
                    )

                expected = _canonical_hash(
                    event_id,
                    data["event_kind"],
                    data["timestamp"],
                    data["actor_id"],
                    data["payload"],
                )
                if data["event_hash"] != expected:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): event {event_id} "
                        f"stored hash {data['event_hash']} != computed {expected}"
                    )

                self._events.append(EventRecord(
                    event_id=event_id,
                    event_kind=EventKind(data["event_kind"]),
                    timestamp=data["timestamp"],
                    actor_id=data["actor_id"],
                    payload=data["payload"],
                    event_hash=data["event_hash"],
                ))
                self._event_ids.add(event_id)
