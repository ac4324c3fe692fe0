"""Change fan-out for Secret Santa rounds.

Services collect events and ledger rows into a :class:`ChangeBatch` while their
transaction is open; :meth:`ChangeNotifier.dispatch` is called only after the
commit. Delivery is at-most-once and best-effort: failures are logged and never
reach the caller.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from loguru import logger

from app.db import ChangeLogEntry, SessionScope, get_session, repo


class ChangeEventType(str, enum.Enum):
    PARTICIPANT_INVITED = "participant_invited"
    PARTICIPANT_REMOVED = "participant_removed"
    PARTICIPANT_ACCEPTED = "participant_accepted"
    PARTICIPANT_DECLINED = "participant_declined"


@dataclass(frozen=True)
class ChangeEvent:
    event: ChangeEventType
    list_id: str
    round_id: str
    actor_id: Optional[str]
    target_user_ids: Tuple[str, ...]


@dataclass(frozen=True)
class LedgerEntry:
    table: str
    record_id: str
    operation: str
    payload: Dict[str, Any]
    recipient_user_id: str


class Notifier(Protocol):
    def notify(self, event: ChangeEvent) -> None:
        ...


class ChangeLedger(Protocol):
    def append(self, entries: Sequence[LedgerEntry]) -> None:
        ...


@dataclass
class ChangeBatch:
    events: List[ChangeEvent] = field(default_factory=list)
    entries: List[LedgerEntry] = field(default_factory=list)

    def notify(
        self,
        event: ChangeEventType,
        list_id: str,
        round_id: str,
        actor_id: Optional[str],
        target_user_ids: Iterable[str],
        keep_empty: bool = False,
    ) -> None:
        targets = tuple(dict.fromkeys(target_user_ids))
        if not targets and not keep_empty:
            return
        self.events.append(ChangeEvent(event, list_id, round_id, actor_id, targets))

    def record(
        self,
        table: str,
        record_id: str,
        operation: str,
        payload: Dict[str, Any],
        recipient_user_ids: Iterable[str],
    ) -> None:
        for recipient in sorted(set(recipient_user_ids)):
            self.entries.append(LedgerEntry(table, record_id, operation, dict(payload), recipient))

    def __bool__(self) -> bool:
        return bool(self.events or self.entries)


class LogNotifier:
    def notify(self, event: ChangeEvent) -> None:
        logger.bind(
            round_id=event.round_id,
            list_id=event.list_id,
            actor_id=event.actor_id,
        ).info(
            "Secret Santa {event} -> {targets}",
            event=event.event.value,
            targets=", ".join(event.target_user_ids),
        )


class SqlChangeLedger:
    def __init__(self, session_scope: SessionScope = get_session) -> None:
        self._session_scope = session_scope

    def append(self, entries: Sequence[LedgerEntry]) -> None:
        if not entries:
            return
        with self._session_scope() as session:
            repo.add_change_log_entries(
                session,
                (
                    ChangeLogEntry(
                        table_name=entry.table,
                        record_id=entry.record_id,
                        operation=entry.operation,
                        payload=entry.payload,
                        user_id=entry.recipient_user_id,
                    )
                    for entry in entries
                ),
            )


class ChangeNotifier:
    def __init__(
        self,
        notifier: Optional[Notifier] = None,
        ledger: Optional[ChangeLedger] = None,
    ) -> None:
        self.notifier = notifier or LogNotifier()
        self.ledger = ledger

    def dispatch(self, batch: ChangeBatch) -> None:
        for event in batch.events:
            try:
                self.notifier.notify(event)
            except Exception as exc:
                logger.bind(round_id=event.round_id, event=event.event.value).exception(
                    "Notification failed: {error}", error=str(exc)
                )

        if self.ledger is None or not batch.entries:
            return
        try:
            self.ledger.append(batch.entries)
        except Exception as exc:
            logger.bind(entries=len(batch.entries)).exception(
                "Change log append failed: {error}", error=str(exc)
            )
