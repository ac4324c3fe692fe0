import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db import (
    Base,
    CollaboratorRole,
    GiftList,
    ListCollaborator,
    User,
    enable_sqlite_savepoints,
    scope_factory,
)
from app.services.directory import SqlListDirectory
from app.services.notifier import ChangeNotifier
from app.services.rounds import RoundLifecycle

LIST_ID = "list-1"
MEMBER_IDS = ["a", "b", "c", "d", "e"]


class TickingClock:
    def __init__(self) -> None:
        self.current = datetime.datetime(2025, 12, 1, 9, 0, tzinfo=datetime.timezone.utc)

    def __call__(self) -> datetime.datetime:
        self.current += datetime.timedelta(seconds=1)
        return self.current


class RecordingNotifier:
    def __init__(self) -> None:
        self.events = []

    def notify(self, event) -> None:
        self.events.append(event)

    def of(self, event_type):
        return [event for event in self.events if event.event == event_type]


class RecordingLedger:
    def __init__(self) -> None:
        self.entries = []

    def append(self, entries) -> None:
        self.entries.extend(entries)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def session_scope(session_factory):
    return scope_factory(session_factory)


@pytest.fixture
def seeded(session_scope):
    with session_scope() as session:
        for user_id in ["owner", "editor", "viewer", "outsider", *MEMBER_IDS]:
            session.add(User(id=user_id, username=user_id, full_name=f"User {user_id.upper()}"))
        session.flush()
        session.add(GiftList(id=LIST_ID, owner_id="owner", title="Family gifts", list_type="gifts"))
        session.add(GiftList(id="a-wishlist", owner_id="a", title="A wants", list_type="gifts"))
        session.add(GiftList(id="b-wishlist", owner_id="b", title="B wants", list_type="gifts"))
        session.add(GiftList(id="movies", owner_id="owner", title="Movies", list_type="movies"))
        session.flush()
        session.add(
            ListCollaborator(list_id=LIST_ID, owner_id="owner", user_id="editor", permission=CollaboratorRole.EDIT.value)
        )
        session.add(
            ListCollaborator(list_id=LIST_ID, owner_id="owner", user_id="viewer", permission=CollaboratorRole.VIEW.value)
        )
    return LIST_ID


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def ledger():
    return RecordingLedger()


@pytest.fixture
def directory():
    return SqlListDirectory()


@pytest.fixture
def lifecycle(seeded, session_scope, directory, notifier, ledger, clock):
    return RoundLifecycle(
        directory=directory,
        notifier=ChangeNotifier(notifier=notifier, ledger=ledger),
        session_scope=session_scope,
        clock=clock,
    )
