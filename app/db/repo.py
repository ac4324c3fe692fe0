from __future__ import annotations

import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import and_, delete, select

from app.db.models import (
    OPEN_ROUND_STATUSES,
    ChangeLogEntry,
    GiftList,
    GuestInvite,
    ListCollaborator,
    Pairing,
    Participant,
    ParticipantStatus,
    Round,
    RoundStatus,
    User,
)


def get_list(session, list_id: str) -> Optional[GiftList]:
    return session.scalar(select(GiftList).where(GiftList.id == list_id))


def get_collaborator(session, list_id: str, user_id: str) -> Optional[ListCollaborator]:
    return session.scalar(
        select(ListCollaborator).where(
            and_(ListCollaborator.list_id == list_id, ListCollaborator.user_id == user_id)
        )
    )


def list_collaborators(session, list_id: str) -> List[ListCollaborator]:
    return list(
        session.scalars(select(ListCollaborator)
            .where(ListCollaborator.list_id == list_id)
            .order_by(ListCollaborator.created_at, ListCollaborator.user_id)
        ).all()
    )


def add_collaborator(
    session,
    list_id: str,
    owner_id: Optional[str],
    user_id: str,
    permission: str,
) -> ListCollaborator:
    collaborator = ListCollaborator(
        list_id=list_id,
        owner_id=owner_id,
        user_id=user_id,
        permission=permission,
    )
    session.add(collaborator)
    session.flush()
    return collaborator


def existing_user_ids(session, user_ids: Iterable[str]) -> Set[str]:
    ids = list(user_ids)
    if not ids:
        return set()
    return set(session.scalars(select(User.id).where(User.id.in_(ids))).all())


def get_users(session, user_ids: Iterable[str]) -> Dict[str, User]:
    ids = list(user_ids)
    if not ids:
        return {}
    return {user.id: user for user in session.scalars(select(User).where(User.id.in_(ids))).all()}


def get_round(session, round_id: str) -> Optional[Round]:
    return session.scalar(select(Round).where(Round.id == round_id))


def get_open_round(session, list_id: str) -> Optional[Round]:
    return session.scalar(
        select(Round)
        .where(and_(Round.list_id == list_id, Round.status.in_(OPEN_ROUND_STATUSES)))
        .order_by(Round.created_at.desc())
        .limit(1)
    )


def get_latest_round(session, list_id: str) -> Optional[Round]:
    return session.scalar(
        select(Round).where(Round.list_id == list_id).order_by(Round.created_at.desc()).limit(1)
    )


def create_round(session, list_id: str, created_by: str, **fields) -> Round:
    round_ = Round(list_id=list_id, created_by=created_by, status=RoundStatus.DRAFT, **fields)
    session.add(round_)
    session.flush()
    return round_


def list_participants(session, round_id: str) -> List[Participant]:
    return list(
        session.scalars(
            select(Participant)
            .where(Participant.round_id == round_id)
            .order_by(Participant.created_at, Participant.user_id)
        ).all()
    )


def list_participant_ids(
    session,
    round_id: str,
    statuses: Sequence[ParticipantStatus],
) -> List[str]:
    return list(
        session.scalars(
            select(Participant.user_id)
            .where(and_(Participant.round_id == round_id, Participant.status.in_(statuses)))
            .order_by(Participant.user_id)
        ).all()
    )


def get_participant(session, round_id: str, user_id: str) -> Optional[Participant]:
    return session.scalar(
        select(Participant).where(
            and_(Participant.round_id == round_id, Participant.user_id == user_id)
        )
    )


def add_participant(
    session,
    round_id: str,
    user_id: str,
    status: ParticipantStatus,
    now: datetime.datetime,
) -> Participant:
    participant = Participant(
        round_id=round_id,
        user_id=user_id,
        status=status,
        created_at=now,
        updated_at=now,
    )
    session.add(participant)
    return participant


def list_pairings(session, round_id: str) -> List[Pairing]:
    return list(
        session.scalars(
            select(Pairing).where(Pairing.round_id == round_id).order_by(Pairing.giver_user_id)
        ).all()
    )


def clear_pairings(session, round_id: str) -> None:
    session.execute(delete(Pairing).where(Pairing.round_id == round_id))


def replace_pairings(
    session,
    round_id: str,
    pairs: Iterable[Tuple[str, str]],
    now: datetime.datetime,
) -> List[Pairing]:
    clear_pairings(session, round_id)
    rows = [
        Pairing(
            round_id=round_id,
            giver_user_id=giver_id,
            recipient_user_id=recipient_id,
            created_at=now,
            updated_at=now,
        )
        for giver_id, recipient_id in pairs
    ]
    session.add_all(rows)
    session.flush()
    return rows


def list_guest_invites(session, round_id: str) -> List[GuestInvite]:
    return list(
        session.scalars(
            select(GuestInvite).where(GuestInvite.round_id == round_id).order_by(GuestInvite.email)
        ).all()
    )


def get_guest_invite(session, round_id: str, email: str) -> Optional[GuestInvite]:
    return session.scalar(
        select(GuestInvite).where(and_(GuestInvite.round_id == round_id, GuestInvite.email == email))
    )


def upsert_guest_invite(
    session,
    round_id: str,
    email: str,
    message: Optional[str],
    now: datetime.datetime,
) -> GuestInvite:
    invite = get_guest_invite(session, round_id, email)
    if invite:
        invite.message = message
        invite.updated_at = now
        return invite
    invite = GuestInvite(round_id=round_id, email=email, message=message, created_at=now, updated_at=now)
    session.add(invite)
    session.flush()
    return invite


def add_change_log_entries(session, entries: Iterable[ChangeLogEntry]) -> int:
    rows = list(entries)
    session.add_all(rows)
    return len(rows)


def list_change_log(session, user_id: str) -> List[ChangeLogEntry]:
    return list(
        session.scalars(
            select(ChangeLogEntry).where(ChangeLogEntry.user_id == user_id).order_by(ChangeLogEntry.id)
        ).all()
    )
