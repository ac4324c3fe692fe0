from __future__ import annotations

import datetime
import enum
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class RoundStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    CLOSED = "closed"


OPEN_ROUND_STATUSES = (RoundStatus.DRAFT, RoundStatus.ACTIVE)


class ParticipantStatus(str, enum.Enum):
    INVITED = "invited"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    REMOVED = "removed"


class CollaboratorRole(str, enum.Enum):
    VIEW = "view"
    EDIT = "edit"
    ADMIN = "admin"


MANAGER_ROLES = frozenset({CollaboratorRole.EDIT.value, CollaboratorRole.ADMIN.value})


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    username = Column(String, nullable=True)
    full_name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username})>"


class GiftList(Base):
    __tablename__ = "lists"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=True)
    list_type = Column(String, nullable=False, default="gifts", server_default="gifts")
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    owner = relationship("User", foreign_keys=[owner_id])

    def __repr__(self) -> str:
        return f"<GiftList(id={self.id}, owner_id={self.owner_id}, list_type={self.list_type})>"


class ListCollaborator(Base):
    __tablename__ = "list_collaborators"

    id = Column(String(36), primary_key=True, default=new_id)
    list_id = Column(String(36), ForeignKey("lists.id", ondelete="CASCADE"), nullable=False)
    owner_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    permission = Column(String, nullable=False, default=CollaboratorRole.VIEW.value)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("list_id", "user_id", name="uq_list_collaborators_list_user"),
    )


class Round(Base):
    __tablename__ = "secret_santa_rounds"

    id = Column(String(36), primary_key=True, default=new_id)
    list_id = Column(String(36), ForeignKey("lists.id", ondelete="CASCADE"), nullable=False)
    status = Column(
        Enum(RoundStatus, name="secret_santa_round_status", values_callable=_enum_values),
        nullable=False,
        default=RoundStatus.DRAFT,
        server_default=RoundStatus.DRAFT.value,
    )
    budget_cents = Column(Integer, nullable=True)
    currency = Column(String(8), nullable=False, default="USD", server_default="USD")
    exchange_date = Column(Date, nullable=True)
    signup_cutoff_date = Column(Date, nullable=True)
    note = Column(Text, nullable=True)
    message = Column(Text, nullable=True)
    exclusion_pairs = Column(JSON, nullable=False, default=lambda: [])
    auto_draw_enabled = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    notify_via_push = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    notify_via_email = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    last_draw_seed = Column(Integer, nullable=True)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    published_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    participants = relationship("Participant", back_populates="round", cascade="all, delete-orphan")
    pairings = relationship("Pairing", back_populates="round", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_secret_santa_rounds_list_status", "list_id", "status"),
        Index(
            "uq_secret_santa_rounds_open_list",
            "list_id",
            unique=True,
            postgresql_where=text("status IN ('draft', 'active')"),
            sqlite_where=text("status IN ('draft', 'active')"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Round(id={self.id}, list_id={self.list_id}, status={self.status})>"


class Participant(Base):
    __tablename__ = "secret_santa_round_participants"

    id = Column(String(36), primary_key=True, default=new_id)
    round_id = Column(String(36), ForeignKey("secret_santa_rounds.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status = Column(
        Enum(ParticipantStatus, name="secret_santa_participant_status", values_callable=_enum_values),
        nullable=False,
        default=ParticipantStatus.INVITED,
        server_default=ParticipantStatus.INVITED.value,
    )
    wishlist_list_id = Column(String(36), ForeignKey("lists.id", ondelete="SET NULL"), nullable=True)
    wishlist_type = Column(String, nullable=True)
    wishlist_share_consent = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    wishlist_share_consented_at = Column(DateTime(timezone=True), nullable=True)
    responded_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    round = relationship("Round", back_populates="participants")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("round_id", "user_id", name="uq_secret_santa_participants_round_user"),
        Index("ix_secret_santa_participants_round", "round_id"),
    )

    def clear_wishlist(self) -> None:
        self.wishlist_list_id = None
        self.wishlist_type = None
        self.wishlist_share_consent = False
        self.wishlist_share_consented_at = None

    def __repr__(self) -> str:
        return f"<Participant(round_id={self.round_id}, user_id={self.user_id}, status={self.status})>"


class Pairing(Base):
    __tablename__ = "secret_santa_pairings"

    id = Column(String(36), primary_key=True, default=new_id)
    round_id = Column(String(36), ForeignKey("secret_santa_rounds.id", ondelete="CASCADE"), nullable=False)
    giver_user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    recipient_user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    revealed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    round = relationship("Round", back_populates="pairings")
    giver = relationship("User", foreign_keys=[giver_user_id])
    recipient = relationship("User", foreign_keys=[recipient_user_id])

    __table_args__ = (
        UniqueConstraint("round_id", "giver_user_id", name="uq_secret_santa_pairings_round_giver"),
        Index("ix_secret_santa_pairings_round", "round_id"),
    )


class GuestInvite(Base):
    __tablename__ = "secret_santa_guest_invites"

    id = Column(String(36), primary_key=True, default=new_id)
    round_id = Column(String(36), ForeignKey("secret_santa_rounds.id", ondelete="CASCADE"), nullable=False)
    email = Column(String, nullable=False)
    invite_token = Column(String(36), nullable=False, default=new_id, unique=True)
    status = Column(String, nullable=False, default="pending", server_default="pending")
    message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("round_id", "email", name="uq_secret_santa_guest_invites_round_email"),
        Index("ix_secret_santa_guest_invites_round", "round_id"),
    )


class ChangeLogEntry(Base):
    __tablename__ = "change_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    table_name = Column(String, nullable=False)
    record_id = Column(String(36), nullable=False)
    operation = Column(String, nullable=False)
    payload = Column(JSON, nullable=True)
    user_id = Column(String(36), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return (
            "<ChangeLogEntry(table={0}, record_id={1}, operation={2}, user_id={3})>"
        ).format(self.table_name, self.record_id, self.operation, self.user_id)
