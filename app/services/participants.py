from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from loguru import logger

from app.core.errors import NotFoundError
from app.db import Participant, ParticipantStatus, Round, repo, utcnow
from app.services.directory import ListDirectory
from app.services.exclusions import ExclusionSet
from app.services.notifier import ChangeBatch, ChangeEventType

PARTICIPANTS_TABLE = "secret_santa_round_participants"

ROSTER_STATUSES = (
    ParticipantStatus.INVITED,
    ParticipantStatus.ACCEPTED,
    ParticipantStatus.DECLINED,
)


@dataclass(frozen=True)
class ReconcileResult:
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


def participant_payload(participant: Participant) -> Dict[str, object]:
    return {
        "round_id": participant.round_id,
        "user_id": participant.user_id,
        "status": ParticipantStatus(participant.status).value,
        "wishlist_list_id": participant.wishlist_list_id,
        "wishlist_type": participant.wishlist_type,
        "wishlist_share_consent": bool(participant.wishlist_share_consent),
    }


def roster_ids(session, round_id: str) -> List[str]:
    return repo.list_participant_ids(session, round_id, ROSTER_STATUSES)


def prune_exclusions(session, round_: Round) -> bool:
    """Drop stored exclusions that no longer reference two roster members."""
    stored = round_.exclusion_pairs or []
    canonical = ExclusionSet.normalize(stored, roster_ids(session, round_.id)).to_payload()
    if canonical == stored:
        return False
    round_.exclusion_pairs = canonical
    return True


class ParticipantRegistry:
    def __init__(
        self,
        directory: ListDirectory,
        clock: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        self._directory = directory
        self._clock = clock

    def reconcile(
        self,
        session,
        round_id: str,
        list_id: str,
        desired_user_ids: Iterable[str],
        actor_id: str,
        batch: Optional[ChangeBatch] = None,
    ) -> ReconcileResult:
        desired = list(dict.fromkeys(str(user_id) for user_id in desired_user_ids))
        desired_set = set(desired)
        rows = {row.user_id: row for row in repo.list_participants(session, round_id)}
        now = self._clock()

        removed: List[str] = []
        for user_id, row in rows.items():
            if row.status != ParticipantStatus.REMOVED and user_id not in desired_set:
                row.status = ParticipantStatus.REMOVED
                row.updated_at = now
                removed.append(user_id)

        added: List[str] = []
        for user_id in desired:
            row = rows.get(user_id)
            if row is not None and row.status != ParticipantStatus.REMOVED:
                continue
            # only a first-time self-invite skips the invitation; re-adds start over
            if row is None and user_id == str(actor_id):
                status = ParticipantStatus.ACCEPTED
            else:
                status = ParticipantStatus.INVITED
            if row is None:
                row = repo.add_participant(session, round_id, user_id, status, now)
                rows[user_id] = row
            else:
                row.status = status
                row.clear_wishlist()
                row.updated_at = now
            row.responded_at = now if status == ParticipantStatus.ACCEPTED else None
            added.append(user_id)

        result = ReconcileResult(added=added, removed=removed)
        if not result.changed:
            return result

        session.flush()
        round_ = repo.get_round(session, round_id)
        if round_ is not None:
            round_.updated_at = now
            prune_exclusions(session, round_)

        if batch is not None:
            batch.notify(
                ChangeEventType.PARTICIPANT_INVITED,
                list_id,
                round_id,
                actor_id,
                [user_id for user_id in added if user_id != str(actor_id)],
            )
            batch.notify(ChangeEventType.PARTICIPANT_REMOVED, list_id, round_id, actor_id, removed)
            managers = self._directory.list_manager_ids(session, list_id)
            for user_id in added + removed:
                self.record(batch, rows[user_id], managers, "upsert")

        logger.bind(round_id=round_id, list_id=list_id).info(
            "Participants reconciled: +{added} -{removed}",
            added=len(added),
            removed=len(removed),
        )
        return result

    def remove(
        self,
        session,
        round_: Round,
        user_id: str,
        actor_id: str,
        batch: Optional[ChangeBatch] = None,
    ) -> bool:
        participant = repo.get_participant(session, round_.id, user_id)
        if participant is None:
            raise NotFoundError("Participant not found in this Secret Santa round")
        if participant.status == ParticipantStatus.REMOVED:
            return False

        now = self._clock()
        participant.status = ParticipantStatus.REMOVED
        participant.updated_at = now
        session.flush()
        prune_exclusions(session, round_)
        round_.updated_at = now

        if batch is not None:
            batch.notify(ChangeEventType.PARTICIPANT_REMOVED, round_.list_id, round_.id, actor_id, [user_id])
            self.record(batch, participant, self._directory.list_manager_ids(session, round_.list_id), "upsert")

        logger.bind(round_id=round_.id, user_id=user_id, actor_id=actor_id).info("Participant removed")
        return True

    @staticmethod
    def record(batch: ChangeBatch, participant: Participant, managers: Iterable[str], operation: str) -> None:
        batch.record(
            PARTICIPANTS_TABLE,
            participant.id,
            operation,
            participant_payload(participant),
            set(managers) | {participant.user_id},
        )
