"""Compensation journal — undo log for multi-step external effects.

Each applied effect registers the action that reverses it. On failure the
journal is unwound newest-first. A compensating action that itself fails
does not stop the unwind; every failure is collected and reported.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Tuple

from multisender.errors import RollbackFailed

logger = logging.getLogger(__name__)


class CompensationJournal:
    """Records undo actions for effects applied during one operation.

    Usage:
        journal = CompensationJournal()
        try:
            apply_effect()
            journal.record("effect", undo_effect)
            ...
        except MultiSendError as exc:
            journal.unwind(exc)
            raise
    """

    def __init__(self) -> None:
        self._entries: List[Tuple[str, Callable[[], None]]] = []

    def record(self, description: str, undo: Callable[[], None]) -> None:
        self._entries.append((description, undo))

    def __len__(self) -> int:
        return len(self._entries)

    def unwind(self, cause: Exception) -> None:
        """Reverse every recorded effect, newest first.

        Raises RollbackFailed (chained to cause) if any undo fails.
        """
        failures: list[str] = []
        while self._entries:
            description, undo = self._entries.pop()
            try:
                undo()
            except Exception as exc:  # noqa: BLE001
                logger.error("Compensation failed for %s: %s", description, exc)
                failures.append(f"{description}: {exc}")
        if failures:
            raise RollbackFailed(cause, failures) from cause
