import pytest
from sqlalchemy.orm import sessionmaker

from auth import issue_session_token, read_session_token, token_from_header
from database import Base, make_engine
from errors import NotFoundError, ValidationError
from models import User
from recents import RecentCounterparties
from schemas import IdentityIn
from services import UserService


def make_session():
    engine = make_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = SessionLocal()
    session.add_all(
        [
            User(id="alice", name="Alice Abebe", email="alice@example.com"),
            User(id="bob", name="Bob Bekele", email="bob@work.example"),
            User(id="carol", name="Carol", email="carol_100%@example.com"),
        ]
        + [User(id=f"u{i:02d}", name=f"Sam {i:02d}") for i in range(15)]
    )
    session.commit()
    return session


def test_search_matches_name_or_email_case_insensitively() -> None:
    session = make_session()
    service = UserService(session, "alice")

    assert [u.id for u in service.search("BEKELE")] == ["bob"]
    assert [u.id for u in service.search("work.EX")] == ["bob"]


def test_search_excludes_the_viewer_and_blank_queries() -> None:
    session = make_session()
    service = UserService(session, "alice")

    assert service.search("alice") == []
    assert service.search("") == []
    assert service.search(None) == []


def test_search_treats_wildcards_literally() -> None:
    session = make_session()
    service = UserService(session, "alice")

    assert [u.id for u in service.search("100%")] == ["carol"]
    assert [u.id for u in service.search("_")] == ["carol"]


def test_search_is_bounded() -> None:
    session = make_session()
    service = UserService(session, "alice")

    assert len(service.search("sam")) == 10
    assert len(service.search("sam", limit=3)) == 3


def test_sign_in_upserts_identity() -> None:
    session = make_session()
    service = UserService(session)

    created = service.sign_in(
        IdentityIn(id="dawit", name="Dawit", email="d@example.com")
    )
    assert created.name == "Dawit"

    updated = service.sign_in(IdentityIn(id="dawit", name="Dawit T.", email=" "))
    assert updated.name == "Dawit T."
    assert updated.email is None
    assert session.get(User, "dawit").name == "Dawit T."


def test_rename_requires_a_name_and_an_existing_user() -> None:
    session = make_session()

    assert UserService(session, "alice").rename("  Alice A. ").name == "Alice A."
    with pytest.raises(ValidationError):
        UserService(session, "alice").rename("   ")
    with pytest.raises(NotFoundError):
        UserService(session, "ghost").rename("Ghost")


def test_resolve_falls_back_to_unknown() -> None:
    session = make_session()
    resolved = UserService(session, "alice").resolve(["bob", "ghost", "bob"])

    assert [u.id for u in resolved] == ["bob", "ghost"]
    assert resolved[1].name == "Unknown"


def test_recent_counterparties_are_bounded_and_newest_first() -> None:
    recents = RecentCounterparties(capacity=3)
    recents.touch("alice", ["bob", "carol"])
    recents.touch("alice", ["dawit", "alice"])
    recents.touch("alice", ["bob"])
    recents.touch("alice", ["eden"])

    assert recents.for_viewer("alice") == ["eden", "bob", "dawit"]
    assert recents.for_viewer("bob") == []


def test_session_tokens_round_trip_and_reject_tampering() -> None:
    token = issue_session_token("alice")

    assert read_session_token(token) == "alice"
    assert read_session_token(token + "x") is None
    assert read_session_token("") is None


def test_bearer_header_parsing() -> None:
    assert token_from_header("Bearer abc") == "abc"
    assert token_from_header("bearer  abc ") == "abc"
    assert token_from_header("Basic abc") is None
    assert token_from_header(None) is None
