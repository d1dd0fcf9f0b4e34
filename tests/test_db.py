"""Tests for database persistence layer."""

import tempfile
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from findadram.core.enums import SpiritType, TrawlStatus
from findadram.db.engine import get_database_url
from findadram.db.models import Base
from findadram.db.repositories import (
    BarRepository,
    BarWhiskeyRepository,
    TrawlJobRepository,
    WhiskeyRepository,
)


@pytest.fixture
def temp_db_path():
    """Create a temporary database file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.db"


@pytest.fixture
def engine(temp_db_path):
    """Create a test database engine."""
    url = f"sqlite:///{temp_db_path}"
    engine = create_engine(url, echo=False)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    """Create a database session for testing."""
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def bar_id(session: Session) -> str:
    """A committed bar."""
    bar_id = BarRepository(session).create("The Dram Shop", city="Brooklyn")
    session.commit()
    return bar_id


class TestDatabaseUrl:
    """Tests for get_database_url."""

    def test_explicit_path(self, temp_db_path) -> None:
        assert get_database_url(temp_db_path) == f"sqlite:///{temp_db_path}"

    def test_env_url_passthrough(self, monkeypatch) -> None:
        monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/findadram")
        assert get_database_url() == "postgresql://localhost/findadram"

    def test_env_path(self, monkeypatch, temp_db_path) -> None:
        monkeypatch.setenv("DATABASE_URL", str(temp_db_path))
        assert get_database_url() == f"sqlite:///{temp_db_path}"


class TestBarRepository:
    """Tests for BarRepository."""

    def test_create_and_exists(self, session: Session, bar_id: str) -> None:
        repo = BarRepository(session)
        assert repo.exists(bar_id) is True
        assert repo.exists("missing") is False

    def test_create_with_explicit_id(self, session: Session) -> None:
        created = BarRepository(session).create("Jack Rose", bar_id="jack-rose")
        assert created == "jack-rose"


class TestWhiskeyRepository:
    """Tests for WhiskeyRepository."""

    def test_create_and_get(self, session: Session) -> None:
        repo = WhiskeyRepository(session)
        created = repo.create(
            name="Lagavulin 16",
            normalized_name="lagavulin 16",
            distillery="Lagavulin",
            distillery_key="lagavulin",
            spirit_type=SpiritType.SCOTCH,
            age=16,
        )
        session.commit()

        fetched = repo.get_by_id(created.id)
        assert fetched is not None
        assert fetched.name == "Lagavulin 16"
        assert fetched.type == SpiritType.SCOTCH
        assert fetched.age == 16
        assert repo.count() == 1

    def test_type_defaults_to_other(self, session: Session) -> None:
        created = WhiskeyRepository(session).create(name="Mystery", normalized_name="mystery")
        assert created.type == SpiritType.OTHER

    def test_identity_is_unique(self, session: Session) -> None:
        repo = WhiskeyRepository(session)
        repo.create(name="Buffalo Trace", normalized_name="buffalo trace")
        session.commit()

        with pytest.raises(IntegrityError):
            repo.create(name="BUFFALO TRACE", normalized_name="buffalo trace")
        session.rollback()

    def test_same_name_different_distillery_allowed(self, session: Session) -> None:
        repo = WhiskeyRepository(session)
        repo.create(name="Single Barrel", normalized_name="single barrel", distillery_key="four roses")
        repo.create(name="Single Barrel", normalized_name="single barrel", distillery_key="blantons")
        session.commit()

        matches = repo.find_by_normalized_name("single barrel")
        assert [key for _, key in matches] == ["four roses", "blantons"]

    def test_find_candidates_by_prefix(self, session: Session) -> None:
        repo = WhiskeyRepository(session)
        repo.create(name="Lagavulin 16", normalized_name="lagavulin 16")
        repo.create(name="Lagavulin 8", normalized_name="lagavulin 8")
        repo.create(name="Laphroaig 10", normalized_name="laphroaig 10")
        session.commit()

        names = {w.name for w, _ in repo.find_candidates("lagav")}
        assert names == {"Lagavulin 16", "Lagavulin 8"}

    def test_find_candidates_escapes_wildcards(self, session: Session) -> None:
        repo = WhiskeyRepository(session)
        repo.create(name="100% Rye", normalized_name="100% rye")
        repo.create(name="1000 Rye", normalized_name="1000 rye")
        session.commit()

        names = [w.name for w, _ in repo.find_candidates("100%")]
        assert names == ["100% Rye"]

    def test_fill_missing_keeps_known_values(self, session: Session) -> None:
        repo = WhiskeyRepository(session)
        created = repo.create(name="Redbreast 12", normalized_name="redbreast 12", age=12)

        repo.fill_missing(created.id, age=15, abv=40.0, distillery=None)
        session.commit()

        fetched = repo.get_by_id(created.id)
        assert fetched.age == 12
        assert fetched.abv == 40.0
        assert fetched.distillery is None

    def test_fill_missing_unknown_id(self, session: Session) -> None:
        with pytest.raises(ValueError):
            WhiskeyRepository(session).fill_missing("missing", age=12)


class TestBarWhiskeyRepository:
    """Tests for BarWhiskeyRepository."""

    def test_create_and_update_listing(self, session: Session, bar_id: str) -> None:
        whiskey = WhiskeyRepository(session).create(name="Eagle Rare", normalized_name="eagle rare")
        repo = BarWhiskeyRepository(session)

        listing = repo.create(bar_id, whiskey.id, price=14.0, pour_size="2oz", confidence=0.8)
        session.commit()
        assert listing.available is True
        assert listing.is_stale is False
        assert listing.first_seen_at == listing.last_verified

        updated = repo.update(listing.id, price=15.0)
        session.commit()
        assert updated.price == 15.0
        assert updated.pour_size == "2oz"
        assert repo.get_for_pair(bar_id, whiskey.id).price == 15.0
        assert repo.count_for_bar(bar_id) == 1

    def test_one_listing_per_pair(self, session: Session, bar_id: str) -> None:
        whiskey = WhiskeyRepository(session).create(name="Eagle Rare", normalized_name="eagle rare")
        repo = BarWhiskeyRepository(session)
        repo.create(bar_id, whiskey.id)
        session.commit()

        with pytest.raises(IntegrityError):
            repo.create(bar_id, whiskey.id)
        session.rollback()

    def test_list_for_bar(self, session: Session, bar_id: str) -> None:
        whiskeys = WhiskeyRepository(session)
        a = whiskeys.create(name="A", normalized_name="a")
        b = whiskeys.create(name="B", normalized_name="b")
        repo = BarWhiskeyRepository(session)
        repo.create(bar_id, a.id)
        repo.create(bar_id, b.id)
        session.commit()

        assert {listing.whiskey_id for listing in repo.list_for_bar(bar_id)} == {a.id, b.id}
        assert repo.list_for_bar("other-bar") == []

    def test_update_unknown_listing(self, session: Session) -> None:
        with pytest.raises(ValueError):
            BarWhiskeyRepository(session).update("missing", price=1.0)


class TestTrawlJobRepository:
    """Tests for TrawlJobRepository."""

    def test_create_job(self, session: Session) -> None:
        repo = TrawlJobRepository(session)
        job = repo.create(bar_id="bar-1", source_url="https://bar.example/menu", source_type="url")
        session.commit()

        fetched = repo.get_by_id(job.id)
        assert fetched.status == TrawlStatus.PROCESSING
        assert fetched.whiskey_count == 0
        assert fetched.result is None

    def test_transition_from_allowed_status(self, session: Session) -> None:
        repo = TrawlJobRepository(session)
        job = repo.create(bar_id="bar-1", source_url=None, source_type="image")

        moved = repo.transition(
            job.id,
            [TrawlStatus.PROCESSING],
            TrawlStatus.COMPLETED,
            whiskey_count=3,
            result={"success": True},
        )
        session.commit()

        assert moved is True
        fetched = repo.get_by_id(job.id)
        assert fetched.status == TrawlStatus.COMPLETED
        assert fetched.whiskey_count == 3
        assert fetched.result == {"success": True}

    def test_transition_from_wrong_status(self, session: Session) -> None:
        repo = TrawlJobRepository(session)
        job = repo.create(bar_id="bar-1", source_url=None, source_type="pdf")
        repo.transition(job.id, [TrawlStatus.PROCESSING], TrawlStatus.FAILED, error="boom")
        session.commit()

        moved = repo.transition(job.id, [TrawlStatus.PROCESSING], TrawlStatus.COMPLETED)
        assert moved is False
        assert repo.get_by_id(job.id).status == TrawlStatus.FAILED

    def test_transition_unknown_job(self, session: Session) -> None:
        repo = TrawlJobRepository(session)
        assert repo.transition("missing", [TrawlStatus.PENDING], TrawlStatus.PROCESSING) is False

    def test_list_recent(self, session: Session) -> None:
        repo = TrawlJobRepository(session)
        first = repo.create(bar_id="bar-1", source_url=None, source_type="url")
        second = repo.create(
            bar_id="bar-1", source_url=None, source_type="url", status=TrawlStatus.PENDING
        )
        session.commit()

        assert {j.id for j in repo.list_recent()} == {first.id, second.id}
        pending = repo.list_recent(status=TrawlStatus.PENDING)
        assert [j.id for j in pending] == [second.id]
        assert len(repo.list_recent(limit=1)) == 1
