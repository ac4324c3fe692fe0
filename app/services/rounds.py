"""Secret Santa round lifecycle.

A round belongs to a gift list and moves ``draft -> active -> closed``. Every
public operation runs in a single session transaction, collects its change
notifications in a :class:`ChangeBatch`, and dispatches them after the commit.
"""
from __future__ import annotations

import datetime
import random
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from loguru import logger
from sqlalchemy.exc import IntegrityError

from app.core.errors import (
    ConflictError,
    ForbiddenError,
    GoneError,
    NotFoundError,
    ValidationError,
)
from app.db import (
    CollaboratorRole,
    GuestInvite,
    Pairing,
    Participant,
    ParticipantStatus,
    Round,
    RoundStatus,
    SessionScope,
    User,
    get_session,
    repo,
    utcnow,
)
from app.services.directory import ListAccess, ListDirectory
from app.services.exclusions import ExclusionSet
from app.services.notifier import ChangeBatch, ChangeEventType, ChangeNotifier
from app.services.pairing import DEFAULT_MAX_STEPS, generate_pairings
from app.services.participants import (
    ParticipantRegistry,
    participant_payload,
    roster_ids,
)

ROUNDS_TABLE = "secret_santa_rounds"
PAIRINGS_TABLE = "secret_santa_pairings"
GUEST_INVITES_TABLE = "secret_santa_guest_invites"

DECISIONS = {"accept": ParticipantStatus.ACCEPTED, "decline": ParticipantStatus.DECLINED}

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
CURRENCY_RE = re.compile(r"^[A-Z]{3,8}$")

DATE_FIELDS = ("exchange_date", "signup_cutoff_date")
TEXT_FIELDS = ("note", "message")
FLAG_FIELDS = ("auto_draw_enabled", "notify_via_push", "notify_via_email")


@dataclass(frozen=True)
class RoundView:
    id: str
    list_id: str
    status: str
    budget_cents: Optional[int]
    currency: str
    exchange_date: Optional[datetime.date]
    signup_cutoff_date: Optional[datetime.date]
    note: Optional[str]
    message: Optional[str]
    exclusions: List[Dict[str, str]]
    auto_draw_enabled: bool
    notify_via_push: bool
    notify_via_email: bool
    created_by: str
    published_at: Optional[datetime.datetime]
    created_at: Optional[datetime.datetime]
    updated_at: Optional[datetime.datetime]


@dataclass(frozen=True)
class ParticipantView:
    user_id: str
    display_name: Optional[str]
    email: Optional[str]
    status: Optional[str]
    is_current_user: bool
    wishlist_list_id: Optional[str] = None
    wishlist_type: Optional[str] = None
    wishlist_share_consent: bool = False


@dataclass(frozen=True)
class PairingView:
    id: str
    round_id: str
    giver_user_id: str
    recipient_user_id: str
    recipient_display_name: Optional[str]
    revealed_at: Optional[datetime.datetime]


@dataclass(frozen=True)
class GuestInviteView:
    id: str
    email: str
    status: str
    message: Optional[str]
    invite_token: str


@dataclass(frozen=True)
class RoundSnapshot:
    round: Optional[RoundView]
    participants: List[ParticipantView] = field(default_factory=list)
    pairings: List[PairingView] = field(default_factory=list)
    viewer_pairing: Optional[PairingView] = None
    guest_invites: List[GuestInviteView] = field(default_factory=list)
    can_manage: bool = False


def _display_name(user: Optional[User]) -> Optional[str]:
    if user is None:
        return None
    return user.full_name or user.username


def _status_value(status: Any) -> str:
    return status.value if hasattr(status, "value") else str(status)


def clean_participant_ids(raw: Any) -> List[str]:
    if isinstance(raw, (str, bytes)) or not isinstance(raw, Iterable):
        raise ValidationError("Select at least two participants")
    ids = [str(value).strip() for value in raw if value is not None and str(value).strip()]
    ids = list(dict.fromkeys(ids))
    if len(ids) < 2:
        raise ValidationError("Select at least two participants")
    return ids


def _parse_budget(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError("Budget must be a whole number of cents")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value < 0:
        raise ValidationError("Budget must be a whole number of cents")
    return value


def _parse_currency(value: Any, default: str) -> str:
    if value is None:
        return default
    currency = str(value).strip().upper()
    if not CURRENCY_RE.match(currency):
        raise ValidationError("Currency must be a 3 to 8 letter code")
    return currency


def _parse_date(name: str, value: Any) -> Optional[datetime.date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        try:
            return datetime.date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise ValidationError(f"{name} must be an ISO date")


def _parse_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_flag(name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{name} must be true or false")
    return value


def parse_round_fields(payload: Mapping[str, Any], default_currency: str = "USD") -> Dict[str, Any]:
    """Validate the scalar round fields present in ``payload``.

    Only keys that are present are returned, so the result doubles as the set
    of columns an update touches.
    """
    fields: Dict[str, Any] = {}
    for key in ("budget_cents", "budget"):
        if key in payload:
            fields["budget_cents"] = _parse_budget(payload[key])
    if "currency" in payload:
        fields["currency"] = _parse_currency(payload["currency"], default_currency)
    for name in DATE_FIELDS:
        if name in payload:
            fields[name] = _parse_date(name, payload[name])
    for name in TEXT_FIELDS:
        if name in payload:
            fields[name] = _parse_text(payload[name])
    for name in FLAG_FIELDS:
        if name in payload:
            fields[name] = _parse_flag(name, payload[name])
    return fields


def _raw_exclusions(payload: Mapping[str, Any]) -> Tuple[bool, Any]:
    for key in ("exclusions", "exclusion_pairs"):
        if key in payload:
            return True, payload[key]
    return False, None


class RoundLifecycle:
    def __init__(
        self,
        directory: ListDirectory,
        notifier: Optional[ChangeNotifier] = None,
        session_scope: SessionScope = get_session,
        clock: Callable[[], datetime.datetime] = utcnow,
        draw_max_steps: int = DEFAULT_MAX_STEPS,
        default_currency: str = "USD",
    ) -> None:
        self._directory = directory
        self._notifier = notifier or ChangeNotifier()
        self._session_scope = session_scope
        self._clock = clock
        self._draw_max_steps = draw_max_steps
        self._default_currency = default_currency
        self.registry = ParticipantRegistry(directory, clock=clock)

    # reads

    def get_active_round(self, list_id: str, viewer_id: str) -> RoundSnapshot:
        with self._session_scope() as session:
            access = self._directory.get_list_access(session, list_id, viewer_id)
            round_ = repo.get_open_round(session, list_id)
            return self._snapshot(session, list_id, round_, viewer_id, access.can_manage)

    # manager operations

    def create_round(self, list_id: str, actor_id: str, payload: Mapping[str, Any]) -> RoundSnapshot:
        batch = ChangeBatch()
        with self._session_scope() as session:
            access = self._directory.get_list_access(session, list_id, actor_id)
            if not access.can_manage:
                raise ForbiddenError("Only list owners or admins can start a Secret Santa round")
            if repo.get_open_round(session, list_id) is not None:
                raise ConflictError("A Secret Santa round already exists for this list")

            participant_ids = clean_participant_ids(payload.get("participant_ids"))
            self._ensure_users_exist(session, participant_ids)
            self._grant_access(session, access, participant_ids)

            fields = parse_round_fields(payload, self._default_currency)
            fields.setdefault("currency", self._default_currency)
            _, raw = _raw_exclusions(payload)
            exclusions = ExclusionSet.normalize(raw, participant_ids)
            now = self._clock()
            try:
                round_ = repo.create_round(
                    session,
                    list_id,
                    actor_id,
                    exclusion_pairs=exclusions.to_payload(),
                    created_at=now,
                    updated_at=now,
                    **fields,
                )
            except IntegrityError as exc:
                raise ConflictError("A Secret Santa round already exists for this list") from exc

            self.registry.reconcile(session, round_.id, list_id, participant_ids, actor_id, batch)
            self._record_round(session, batch, round_, "create")
            logger.bind(round_id=round_.id, list_id=list_id, actor_id=actor_id).info("Round created")
            snapshot = self._snapshot(session, list_id, round_, actor_id, True)

        self._notifier.dispatch(batch)
        return snapshot

    def update_round(self, round_id: str, actor_id: str, payload: Mapping[str, Any]) -> RoundSnapshot:
        batch = ChangeBatch()
        with self._session_scope() as session:
            round_, access = self._require_manage(session, round_id, actor_id)
            self._ensure_open(round_)

            closing = self._check_status_change(round_, payload)
            fields = parse_round_fields(payload, self._default_currency)
            changed = False
            for column, value in fields.items():
                if getattr(round_, column) != value:
                    setattr(round_, column, value)
                    changed = True

            if "participant_ids" in payload:
                participant_ids = clean_participant_ids(payload["participant_ids"])
                self._ensure_users_exist(session, participant_ids)
                self._grant_access(session, access, participant_ids)
                self.registry.reconcile(session, round_.id, round_.list_id, participant_ids, actor_id, batch)

            supplied, raw = _raw_exclusions(payload)
            source = raw if supplied else round_.exclusion_pairs
            canonical = ExclusionSet.normalize(source, roster_ids(session, round_.id)).to_payload()
            if canonical != (round_.exclusion_pairs or []):
                round_.exclusion_pairs = canonical
                changed = True

            if closing:
                round_.status = RoundStatus.CLOSED
                changed = True

            if changed:
                round_.updated_at = self._clock()
                self._record_round(session, batch, round_, "update")
                logger.bind(round_id=round_.id, actor_id=actor_id).info("Round updated")
            snapshot = self._snapshot(session, round_.list_id, round_, actor_id, True)

        self._notifier.dispatch(batch)
        return snapshot

    def publish_round(self, round_id: str, actor_id: str, seed: Optional[int] = None) -> RoundSnapshot:
        batch = ChangeBatch()
        with self._session_scope() as session:
            round_, _ = self._require_manage(session, round_id, actor_id)
            self._ensure_open(round_)

            accepted = repo.list_participant_ids(session, round_.id, [ParticipantStatus.ACCEPTED])
            if len(accepted) < 2:
                raise ValidationError(
                    "At least two participants must accept before assignments can be drawn"
                )

            exclusions = ExclusionSet.normalize(round_.exclusion_pairs, accepted)
            if seed is None:
                seed = random.randint(1, 2**31 - 1)
            drawn = generate_pairings(
                accepted,
                exclusions,
                seed=seed,
                max_steps=self._draw_max_steps,
            )

            now = self._clock()
            try:
                pairings = repo.replace_pairings(
                    session,
                    round_.id,
                    [(pairing.giver_user_id, pairing.recipient_user_id) for pairing in drawn],
                    now,
                )
            except IntegrityError as exc:
                raise ConflictError("Secret Santa assignments changed while publishing") from exc

            if round_.status == RoundStatus.DRAFT:
                round_.status = RoundStatus.ACTIVE
                round_.published_at = now
            round_.updated_at = now
            round_.last_draw_seed = seed
            session.flush()

            for pairing in pairings:
                batch.record(
                    PAIRINGS_TABLE,
                    pairing.id,
                    "upsert",
                    {
                        "round_id": round_.id,
                        "giver_user_id": pairing.giver_user_id,
                        "recipient_user_id": pairing.recipient_user_id,
                    },
                    [pairing.giver_user_id],
                )
            self._record_round(session, batch, round_, "update")
            logger.bind(round_id=round_.id, seed=seed, participants=len(accepted)).info("Round published")
            snapshot = self._snapshot(session, round_.list_id, round_, actor_id, True)

        self._notifier.dispatch(batch)
        return snapshot

    def close_round(self, round_id: str, actor_id: str) -> RoundSnapshot:
        batch = ChangeBatch()
        with self._session_scope() as session:
            round_, _ = self._require_manage(session, round_id, actor_id)
            if round_.status != RoundStatus.CLOSED:
                round_.status = RoundStatus.CLOSED
                round_.updated_at = self._clock()
                self._record_round(session, batch, round_, "update")
                logger.bind(round_id=round_.id, actor_id=actor_id).info("Round closed")
            snapshot = self._snapshot(session, round_.list_id, round_, actor_id, True)

        self._notifier.dispatch(batch)
        return snapshot

    def remove_participant(self, round_id: str, actor_id: str, user_id: str) -> RoundSnapshot:
        batch = ChangeBatch()
        with self._session_scope() as session:
            round_, _ = self._require_manage(session, round_id, actor_id)
            self._ensure_open(round_)
            self.registry.remove(session, round_, str(user_id), actor_id, batch)
            snapshot = self._snapshot(session, round_.list_id, round_, actor_id, True)

        self._notifier.dispatch(batch)
        return snapshot

    def invite_guests(
        self,
        list_id: str,
        actor_id: str,
        emails: Sequence[Any],
        message: Optional[str] = None,
    ) -> RoundSnapshot:
        cleaned = list(
            dict.fromkeys(str(email).strip().lower() for email in emails or [] if str(email or "").strip())
        )
        invalid = [email for email in cleaned if not EMAIL_RE.match(email)]
        if invalid:
            raise ValidationError("Invalid email address: " + ", ".join(invalid))

        batch = ChangeBatch()
        with self._session_scope() as session:
            access = self._directory.get_list_access(session, list_id, actor_id)
            if not access.can_manage:
                raise ForbiddenError("Only list admins can invite guests to Secret Santa")

            round_ = repo.get_latest_round(session, list_id)
            if not cleaned:
                return self._snapshot(session, list_id, round_, actor_id, True)
            if round_ is None:
                raise NotFoundError("Create a Secret Santa round before inviting guests")
            self._ensure_open(round_)

            managers = self._directory.list_manager_ids(session, list_id)
            now = self._clock()
            for email in cleaned:
                try:
                    with session.begin_nested():
                        invite = repo.upsert_guest_invite(session, round_.id, email, _parse_text(message), now)
                except IntegrityError as exc:
                    logger.bind(round_id=round_.id, email=email).warning(
                        "Failed to store guest invite: {error}", error=exc.orig
                    )
                    continue
                batch.record(
                    GUEST_INVITES_TABLE,
                    invite.id,
                    "upsert",
                    {"round_id": round_.id, "email": invite.email, "status": invite.status},
                    managers,
                )
            snapshot = self._snapshot(session, list_id, round_, actor_id, True)

        self._notifier.dispatch(batch)
        return snapshot

    # participant operations

    def respond_to_invite(
        self,
        round_id: str,
        user_id: str,
        decision: str,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> RoundSnapshot:
        payload = payload or {}
        status = DECISIONS.get(str(decision or "").strip().lower())
        if status is None:
            raise ValidationError("Decision must be 'accept' or 'decline'")

        batch = ChangeBatch()
        with self._session_scope() as session:
            round_ = repo.get_round(session, round_id)
            if round_ is None:
                raise NotFoundError("Secret Santa round not found")
            participant = repo.get_participant(session, round_.id, str(user_id))
            if participant is None:
                raise NotFoundError("You are not invited to this Secret Santa round")
            if participant.status == ParticipantStatus.REMOVED:
                raise GoneError("You are no longer part of this Secret Santa round")
            self._ensure_open(round_)

            before = self._response_state(participant)
            participant.status = status
            if status == ParticipantStatus.ACCEPTED:
                self._apply_wishlist(session, participant, payload)
            else:
                participant.clear_wishlist()

            managers = self._directory.list_manager_ids(session, round_.list_id)
            if self._response_state(participant) != before:
                now = self._clock()
                participant.responded_at = now
                participant.updated_at = now
                event = (
                    ChangeEventType.PARTICIPANT_ACCEPTED
                    if status == ParticipantStatus.ACCEPTED
                    else ChangeEventType.PARTICIPANT_DECLINED
                )
                batch.notify(
                    event,
                    round_.list_id,
                    round_.id,
                    participant.user_id,
                    [manager for manager in sorted(managers) if manager != participant.user_id],
                    keep_empty=True,
                )
                ParticipantRegistry.record(batch, participant, managers, "upsert")
                logger.bind(round_id=round_.id, user_id=participant.user_id).info(
                    "Invite {decision}", decision=status.value
                )
            snapshot = self._snapshot(
                session, round_.list_id, round_, participant.user_id, participant.user_id in managers
            )

        self._notifier.dispatch(batch)
        return snapshot

    # helpers

    def _require_manage(self, session, round_id: str, actor_id: str) -> Tuple[Round, ListAccess]:
        round_ = repo.get_round(session, round_id)
        if round_ is None:
            raise NotFoundError("Secret Santa round not found")
        access = self._directory.get_list_access(session, round_.list_id, actor_id)
        if not access.can_manage:
            raise ForbiddenError("You do not have permission to manage this Secret Santa round")
        return round_, access

    @staticmethod
    def _ensure_open(round_: Round) -> None:
        if round_.status == RoundStatus.CLOSED:
            raise ValidationError("This Secret Santa round is closed")

    @staticmethod
    def _check_status_change(round_: Round, payload: Mapping[str, Any]) -> bool:
        if "status" not in payload:
            return False
        requested = str(payload["status"] or "").strip().lower()
        if requested == _status_value(round_.status):
            return False
        if requested == RoundStatus.CLOSED.value:
            return True
        raise ValidationError("Round status can only change by publishing or closing the round")

    def _ensure_users_exist(self, session, user_ids: List[str]) -> None:
        known = self._directory.users_exist(session, user_ids)
        unknown = [user_id for user_id in user_ids if user_id not in known]
        if unknown:
            raise ValidationError("One or more participants are not valid users")

    def _grant_access(self, session, access: ListAccess, user_ids: List[str]) -> None:
        for user_id in user_ids:
            self._directory.grant_list_access(
                session, access.list.id, access.list.owner_id, user_id, CollaboratorRole.VIEW.value
            )

    def _apply_wishlist(self, session, participant: Participant, payload: Mapping[str, Any]) -> None:
        wishlist_id = _parse_text(payload.get("wishlist_list_id"))
        if wishlist_id is None:
            participant.clear_wishlist()
            return

        wishlist = self._directory.get_owned_list(session, wishlist_id, participant.user_id)
        if wishlist is None:
            raise ValidationError("The selected wishlist must be one of your own lists")

        consent = payload.get("wishlist_share_consent") is True
        same_consent = (
            consent
            and participant.wishlist_share_consent
            and participant.wishlist_list_id == wishlist.id
        )
        participant.wishlist_list_id = wishlist.id
        participant.wishlist_type = _parse_text(payload.get("wishlist_type")) or wishlist.list_type
        participant.wishlist_share_consent = consent
        if not consent:
            participant.wishlist_share_consented_at = None
        elif not same_consent:
            participant.wishlist_share_consented_at = self._clock()

    @staticmethod
    def _response_state(participant: Participant) -> Tuple[Any, ...]:
        return (
            _status_value(participant.status),
            participant.wishlist_list_id,
            participant.wishlist_type,
            bool(participant.wishlist_share_consent),
        )

    def _record_round(self, session, batch: ChangeBatch, round_: Round, operation: str) -> None:
        audience = self._directory.list_manager_ids(session, round_.list_id)
        audience.update(roster_ids(session, round_.id))
        batch.record(
            ROUNDS_TABLE,
            round_.id,
            operation,
            {
                "list_id": round_.list_id,
                "status": _status_value(round_.status),
                "updated_at": round_.updated_at.isoformat() if round_.updated_at else None,
            },
            audience,
        )

    def _snapshot(
        self,
        session,
        list_id: str,
        round_: Optional[Round],
        viewer_id: str,
        can_manage: bool,
    ) -> RoundSnapshot:
        if round_ is None:
            member_ids = self._directory.list_member_ids(session, list_id)
            users = repo.get_users(session, member_ids)
            candidates = [
                ParticipantView(
                    user_id=user_id,
                    display_name=_display_name(users.get(user_id)),
                    email=users[user_id].email if user_id in users else None,
                    status=None,
                    is_current_user=user_id == str(viewer_id),
                )
                for user_id in member_ids
            ]
            return RoundSnapshot(round=None, participants=candidates, can_manage=can_manage)

        rows = [
            row
            for row in repo.list_participants(session, round_.id)
            if row.status != ParticipantStatus.REMOVED
        ]
        pairing_rows = repo.list_pairings(session, round_.id)
        users = repo.get_users(
            session,
            {row.user_id for row in rows} | {pairing.recipient_user_id for pairing in pairing_rows},
        )

        participants = sorted(
            (self._participant_view(row, users.get(row.user_id), viewer_id) for row in rows),
            key=lambda view: ((view.display_name or "").lower(), view.user_id),
        )
        pairings = [self._pairing_view(pairing, users.get(pairing.recipient_user_id)) for pairing in pairing_rows]
        viewer_pairing = next(
            (pairing for pairing in pairings if pairing.giver_user_id == str(viewer_id)),
            None,
        )
        guest_invites = (
            [self._guest_invite_view(invite) for invite in repo.list_guest_invites(session, round_.id)]
            if can_manage
            else []
        )
        return RoundSnapshot(
            round=self._round_view(round_),
            participants=participants,
            pairings=pairings if can_manage else [],
            viewer_pairing=viewer_pairing,
            guest_invites=guest_invites,
            can_manage=can_manage,
        )

    @staticmethod
    def _round_view(round_: Round) -> RoundView:
        return RoundView(
            id=round_.id,
            list_id=round_.list_id,
            status=_status_value(round_.status),
            budget_cents=round_.budget_cents,
            currency=round_.currency,
            exchange_date=round_.exchange_date,
            signup_cutoff_date=round_.signup_cutoff_date,
            note=round_.note,
            message=round_.message,
            exclusions=list(round_.exclusion_pairs or []),
            auto_draw_enabled=bool(round_.auto_draw_enabled),
            notify_via_push=bool(round_.notify_via_push),
            notify_via_email=bool(round_.notify_via_email),
            created_by=round_.created_by,
            published_at=round_.published_at,
            created_at=round_.created_at,
            updated_at=round_.updated_at,
        )

    @staticmethod
    def _participant_view(row: Participant, user: Optional[User], viewer_id: str) -> ParticipantView:
        payload = participant_payload(row)
        return ParticipantView(
            user_id=row.user_id,
            display_name=_display_name(user),
            email=user.email if user else None,
            status=payload["status"],
            is_current_user=row.user_id == str(viewer_id),
            wishlist_list_id=row.wishlist_list_id,
            wishlist_type=row.wishlist_type,
            wishlist_share_consent=bool(row.wishlist_share_consent),
        )

    @staticmethod
    def _pairing_view(pairing: Pairing, recipient: Optional[User]) -> PairingView:
        return PairingView(
            id=pairing.id,
            round_id=pairing.round_id,
            giver_user_id=pairing.giver_user_id,
            recipient_user_id=pairing.recipient_user_id,
            recipient_display_name=_display_name(recipient),
            revealed_at=pairing.revealed_at,
        )

    @staticmethod
    def _guest_invite_view(invite: GuestInvite) -> GuestInviteView:
        return GuestInviteView(
            id=invite.id,
            email=invite.email,
            status=invite.status,
            message=invite.message,
            invite_token=invite.invite_token,
        )
