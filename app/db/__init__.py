from app.db.models import (
    MANAGER_ROLES,
    OPEN_ROUND_STATUSES,
    Base,
    ChangeLogEntry,
    CollaboratorRole,
    GiftList,
    GuestInvite,
    ListCollaborator,
    Pairing,
    Participant,
    ParticipantStatus,
    Round,
    RoundStatus,
    User,
    new_id,
    utcnow,
)
from app.db.session import (
    SessionLocal,
    SessionScope,
    create_schema,
    enable_sqlite_savepoints,
    get_session,
    init_engine,
    scope_factory,
    session_scope,
)

__all__ = [
    "MANAGER_ROLES",
    "OPEN_ROUND_STATUSES",
    "Base",
    "ChangeLogEntry",
    "CollaboratorRole",
    "GiftList",
    "GuestInvite",
    "ListCollaborator",
    "Pairing",
    "Participant",
    "ParticipantStatus",
    "Round",
    "RoundStatus",
    "User",
    "new_id",
    "utcnow",
    "SessionLocal",
    "SessionScope",
    "create_schema",
    "enable_sqlite_savepoints",
    "get_session",
    "init_engine",
    "scope_factory",
    "session_scope",
]
