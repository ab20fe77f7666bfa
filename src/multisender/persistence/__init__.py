"""Persistence subsystem — append-only event log and state replay."""

from multisender.persistence.event_log import EventKind, EventLog, EventRecord
from multisender.persistence.replay import ReplayedState, replay

__all__ = [
    "EventKind",
    "EventLog",
    "EventRecord",
    "ReplayedState",
    "replay",
]
