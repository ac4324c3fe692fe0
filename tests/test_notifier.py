from app.db import repo
from app.services.notifier import (
    ChangeBatch,
    ChangeEventType,
    ChangeNotifier,
    LedgerEntry,
    SqlChangeLedger,
)


class FailingNotifier:
    def __init__(self) -> None:
        self.calls = 0

    def notify(self, event) -> None:
        self.calls += 1
        raise RuntimeError("gateway timeout")


class ListLedger:
    def __init__(self) -> None:
        self.entries = []

    def append(self, entries) -> None:
        self.entries.extend(entries)


def test_batch_skips_events_without_targets():
    batch = ChangeBatch()
    batch.notify(ChangeEventType.PARTICIPANT_INVITED, "list", "round", "owner", [])
    assert not batch


def test_batch_keeps_untargeted_event_when_asked():
    batch = ChangeBatch()
    batch.notify(ChangeEventType.PARTICIPANT_DECLINED, "list", "round", "owner", [], keep_empty=True)
    assert len(batch.events) == 1
    assert batch.events[0].target_user_ids == ()


def test_batch_record_fans_out_once_per_recipient():
    batch = ChangeBatch()
    batch.record("secret_santa_rounds", "round", "update", {"status": "active"}, ["b", "a", "b"])
    assert [entry.recipient_user_id for entry in batch.entries] == ["a", "b"]


def test_dispatch_keeps_going_after_notifier_failure():
    notifier = FailingNotifier()
    ledger = ListLedger()
    batch = ChangeBatch()
    batch.notify(ChangeEventType.PARTICIPANT_INVITED, "list", "round", "owner", ["a"])
    batch.notify(ChangeEventType.PARTICIPANT_REMOVED, "list", "round", "owner", ["b"])
    batch.record("secret_santa_rounds", "round", "update", {}, ["a"])

    ChangeNotifier(notifier=notifier, ledger=ledger).dispatch(batch)

    assert notifier.calls == 2
    assert len(ledger.entries) == 1


def test_sql_ledger_appends_rows(session_scope):
    ledger = SqlChangeLedger(session_scope)
    ledger.append(
        [
            LedgerEntry("secret_santa_pairings", "p1", "upsert", {"giver_user_id": "a"}, "a"),
            LedgerEntry("secret_santa_rounds", "r1", "update", {"status": "active"}, "a"),
        ]
    )
    with session_scope() as session:
        rows = repo.list_change_log(session, "a")
    assert [(row.table_name, row.record_id) for row in rows] == [
        ("secret_santa_pairings", "p1"),
        ("secret_santa_rounds", "r1"),
    ]
    assert rows[0].payload == {"giver_user_id": "a"}
