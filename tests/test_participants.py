import pytest

from app.core.errors import NotFoundError
from app.db import ParticipantStatus, repo
from app.services.notifier import ChangeBatch, ChangeEventType
from app.services.participants import ParticipantRegistry


@pytest.fixture
def registry(directory, clock):
    return ParticipantRegistry(directory, clock=clock)


@pytest.fixture
def round_id(seeded, session_scope):
    with session_scope() as session:
        round_ = repo.create_round(
            session,
            seeded,
            "a",
            exclusion_pairs=[{"user_id": "b", "excluded_user_id": "c"}],
        )
        return round_.id


def statuses(session_scope, round_id):
    with session_scope() as session:
        return {row.user_id: row.status for row in repo.list_participants(session, round_id)}


def test_reconcile_is_idempotent(session_scope, registry, round_id, seeded):
    with session_scope() as session:
        first = registry.reconcile(session, round_id, seeded, ["a", "b", "c"], "a")
    with session_scope() as session:
        second = registry.reconcile(session, round_id, seeded, ["a", "b", "c"], "a")

    assert sorted(first.added) == ["a", "b", "c"]
    assert first.removed == []
    assert second.added == []
    assert second.removed == []
    assert statuses(session_scope, round_id) == {
        "a": ParticipantStatus.ACCEPTED,
        "b": ParticipantStatus.INVITED,
        "c": ParticipantStatus.INVITED,
    }


def test_reconcile_soft_removes_and_reinvites(session_scope, registry, round_id, seeded):
    with session_scope() as session:
        registry.reconcile(session, round_id, seeded, ["a", "b", "c"], "a")
        participant = repo.get_participant(session, round_id, "b")
        participant.status = ParticipantStatus.ACCEPTED
        participant.wishlist_list_id = "b-wishlist"
        participant.wishlist_share_consent = True

    with session_scope() as session:
        result = registry.reconcile(session, round_id, seeded, ["a", "c"], "a")
    assert result.removed == ["b"]
    assert result.added == []
    assert statuses(session_scope, round_id)["b"] == ParticipantStatus.REMOVED

    with session_scope() as session:
        result = registry.reconcile(session, round_id, seeded, ["a", "b", "c"], "a")
        participant = repo.get_participant(session, round_id, "b")
        assert participant.status == ParticipantStatus.INVITED
        assert participant.wishlist_list_id is None
        assert participant.wishlist_share_consent is False
        assert len(repo.list_participants(session, round_id)) == 3
    assert result.added == ["b"]


def test_reconcile_bumps_updated_at_only_on_change(session_scope, registry, round_id, seeded):
    with session_scope() as session:
        registry.reconcile(session, round_id, seeded, ["a", "b"], "a")
    with session_scope() as session:
        before = repo.get_round(session, round_id).updated_at
    with session_scope() as session:
        registry.reconcile(session, round_id, seeded, ["b", "a"], "a")
    with session_scope() as session:
        assert repo.get_round(session, round_id).updated_at == before


def test_reconcile_prunes_exclusions_for_removed_users(session_scope, registry, round_id, seeded):
    with session_scope() as session:
        registry.reconcile(session, round_id, seeded, ["a", "b", "c"], "a")
        assert repo.get_round(session, round_id).exclusion_pairs == [{"user_id": "b", "excluded_user_id": "c"}]
    with session_scope() as session:
        registry.reconcile(session, round_id, seeded, ["a", "b"], "a")
    with session_scope() as session:
        assert repo.get_round(session, round_id).exclusion_pairs == []


def test_reconcile_records_notifications(session_scope, registry, round_id, seeded):
    batch = ChangeBatch()
    with session_scope() as session:
        registry.reconcile(session, round_id, seeded, ["a", "b", "c"], "a", batch)

    invited = [event for event in batch.events if event.event == ChangeEventType.PARTICIPANT_INVITED]
    assert len(invited) == 1
    assert invited[0].target_user_ids == ("b", "c")
    assert invited[0].round_id == round_id
    assert invited[0].list_id == seeded
    assert invited[0].actor_id == "a"
    recipients = {entry.recipient_user_id for entry in batch.entries}
    assert {"owner", "editor", "a", "b", "c"} <= recipients
    assert "viewer" not in recipients

    batch = ChangeBatch()
    with session_scope() as session:
        registry.reconcile(session, round_id, seeded, ["a", "c"], "a", batch)
    assert [(event.event, event.target_user_ids) for event in batch.events] == [
        (ChangeEventType.PARTICIPANT_REMOVED, ("b",))
    ]


def test_remove_is_a_no_op_when_already_removed(session_scope, registry, round_id, seeded):
    with session_scope() as session:
        registry.reconcile(session, round_id, seeded, ["a", "b", "c"], "a")
    with session_scope() as session:
        round_ = repo.get_round(session, round_id)
        assert registry.remove(session, round_, "b", "a") is True
    with session_scope() as session:
        round_ = repo.get_round(session, round_id)
        assert registry.remove(session, round_, "b", "a") is False
        with pytest.raises(NotFoundError):
            registry.remove(session, round_, "outsider", "a")
