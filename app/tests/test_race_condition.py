"""
Concurrent booking tests.

Every scenario fires simultaneous requests at an event and checks that the
capacity invariant and the one-live-booking-per-email rule still hold.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.locks import LocalEventLocks, RedisEventLocks
from app.database.db import Base, get_db
from app.main import app
from app.services.errors import CapacityError, DuplicateError
from app.services.ledger import RegistrationLedger
from app.stores.memory import MemoryStore
from app.stores.sql import SqlAlchemyStore


def booking_payload(event_id: int, n: int, email: str | None = None) -> dict:
    return {
        "eventId": event_id,
        "participantName": f"Racer {n}",
        "email": email or f"racer{n}@example.com",
        "phone": f"555-{n:04d}",
    }


def run_concurrently(fn, args, workers: int = 10):
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(fn, a) for a in args]
        return [f.result() for f in futures]


@pytest.fixture
def file_sessionmaker(tmp_path):
    """
    SQLite file database: one connection per thread, so concurrent sessions
    behave like separate clients of a real database server.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


def attempt(ledger_factory, payload):
    ledger, close = ledger_factory()
    try:
        return ledger.create_booking(payload)
    except (CapacityError, DuplicateError) as e:
        return e
    finally:
        close()


class TestLedgerRaces:
    def test_last_seat_memory_store(self, event_fields):
        store = MemoryStore()
        ledger = RegistrationLedger(store, LocalEventLocks())
        event = ledger.create_event({**event_fields, "maxParticipants": 1})

        results = run_concurrently(
            lambda n: attempt(lambda: (ledger, lambda: None), booking_payload(event.id, n)),
            range(10),
        )

        succeeded = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, CapacityError)]
        assert len(succeeded) == 1
        assert len(rejected) == 9
        assert ledger.get_event(event.id).current_participants == 1

    def test_last_seats_sql_store(self, file_sessionmaker, event_fields):
        locks = LocalEventLocks(blocking_timeout=30)

        def ledger_factory():
            db = file_sessionmaker()
            return RegistrationLedger(SqlAlchemyStore(db), locks), db.close

        setup, close = ledger_factory()
        event = setup.create_event({**event_fields, "maxParticipants": 3})
        close()

        results = run_concurrently(lambda n: attempt(ledger_factory, booking_payload(event.id, n)), range(12))

        succeeded = [r for r in results if not isinstance(r, Exception)]
        assert len(succeeded) == 3
        assert all(isinstance(r, CapacityError) for r in results if isinstance(r, Exception))

        check, close = ledger_factory()
        try:
            assert check.get_event(event.id).current_participants == 3
            assert len(check.list_confirmed_bookings()) == 3
        finally:
            close()

    def test_same_email_races_sql_store(self, file_sessionmaker, event_fields):
        locks = LocalEventLocks(blocking_timeout=30)

        def ledger_factory():
            db = file_sessionmaker()
            return RegistrationLedger(SqlAlchemyStore(db), locks), db.close

        setup, close = ledger_factory()
        event = setup.create_event({**event_fields, "maxParticipants": 20})
        close()

        results = run_concurrently(
            lambda n: attempt(ledger_factory, booking_payload(event.id, n, email="same@example.com")),
            range(8),
        )

        succeeded = [r for r in results if not isinstance(r, Exception)]
        assert len(succeeded) == 1
        assert sum(isinstance(r, DuplicateError) for r in results) == 7

        check, close = ledger_factory()
        try:
            assert check.get_event(event.id).current_participants == 1
        finally:
            close()

    def test_last_seat_with_redis_locks(self, fake_redis, event_fields):
        ledger = RegistrationLedger(MemoryStore(), RedisEventLocks(fake_redis, timeout=10, blocking_timeout=10))
        event = ledger.create_event({**event_fields, "maxParticipants": 2})

        results = run_concurrently(
            lambda n: attempt(lambda: (ledger, lambda: None), booking_payload(event.id, n)),
            range(6),
            workers=6,
        )

        assert sum(not isinstance(r, Exception) for r in results) == 2
        assert ledger.get_event(event.id).current_participants == 2


class TestApiRaces:
    def test_two_requests_for_one_seat(self, memory_client: TestClient, event_fields):
        event = memory_client.post("/events/add", json={**event_fields, "maxParticipants": 1}).json()["data"]

        statuses = run_concurrently(
            lambda n: memory_client.post("/api/bookings", json=booking_payload(event["id"], n)),
            range(2),
            workers=2,
        )

        codes = sorted(r.status_code for r in statuses)
        assert codes == [201, 400]
        rejected = next(r for r in statuses if r.status_code == 400)
        assert rejected.json()["message"] == "Event is fully booked"

    def test_ten_requests_three_seats_sql(self, file_sessionmaker, event_fields):
        def override_get_db():
            db = file_sessionmaker()
            try:
                yield db
            finally:
                db.close()

        previous_override = app.dependency_overrides.get(get_db)
        app.dependency_overrides[get_db] = override_get_db
        app.state.memory_store = None
        app.state.event_locks = LocalEventLocks(blocking_timeout=30)
        try:
            with TestClient(app) as client:
                event = client.post("/events/add", json={**event_fields, "maxParticipants": 3}).json()["data"]

                responses = run_concurrently(
                    lambda n: client.post("/api/bookings", json=booking_payload(event["id"], n)),
                    range(10),
                )

                successful = [r for r in responses if r.status_code == 201]
                failed = [r for r in responses if r.status_code == 400]
                assert len(successful) == 3
                assert len(failed) == 7

                stats = client.get(f"/event/{event['id']}/stats").json()["data"]
                assert stats["currentParticipants"] == 3
                assert stats["confirmedCount"] == 3
                assert stats["currentParticipants"] <= stats["maxParticipants"]
        finally:
            if previous_override is not None:
                app.dependency_overrides[get_db] = previous_override
