from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from companion.application.api import (
    ProfileSessions,
    create_profile,
    delete_profile,
    get_profile,
    list_profiles,
    load_service,
    save_service_state,
)
from companion.domain.services import DangerAssessmentService
from companion.infrastructure.config import DatabaseConfig
from companion.infrastructure.db import create_database_engine, create_session_factory
from companion.infrastructure.exceptions import DatabaseError, ProfileNotFoundError
from companion.infrastructure.models import AssessmentRecordORM, IncidentORM
from companion.infrastructure.uow import UnitOfWork
from companion.utils.seed import initialise_database


@pytest.fixture
def session_factory():
    engine = create_database_engine(DatabaseConfig(backend="sqlite", sqlite_path=":memory:"))
    initialise_database(engine)
    return create_session_factory(engine)


@pytest.fixture
def profile_id(session_factory) -> int:
    with UnitOfWork(session_factory).begin() as s:
        return create_profile(s, "Primary").id


def populated_service() -> DangerAssessmentService:
    service = DangerAssessmentService()
    service.set_answer("6", True)
    service.set_answer("99", True)
    service.set_answer("2", False)
    service.add_incident(date(2024, 1, 1), 2, "plain date")
    service.add_incident(datetime(2024, 2, 1, 21, 15), 7, "with time")
    service.get_assessment_result()
    return service


def test_initialise_database_reports_existing_tables(session_factory):
    engine = session_factory.kw["bind"]
    assert initialise_database(engine) is True


def test_round_trip(session_factory, profile_id):
    service = populated_service()
    with UnitOfWork(session_factory).begin() as s:
        assert save_service_state(s, profile_id, service) == 1

    with session_factory() as s:
        restored = load_service(s, profile_id)

    assert restored.get_answers() == {"6": True, "99": True, "2": False}
    assert restored.get_incidents() == service.get_incidents()
    assert restored.get_assessment_history() == service.get_assessment_history()
    dates = [i.date for i in restored.get_incidents()]
    assert dates == [datetime(2024, 2, 1, 21, 15), date(2024, 1, 1)]


def test_repeated_saves_do_not_duplicate_history(session_factory, profile_id):
    service = populated_service()
    for expected in (1, 0, 0):
        with UnitOfWork(session_factory).begin() as s:
            assert save_service_state(s, profile_id, service) == expected

    service.get_assessment_result()
    with UnitOfWork(session_factory).begin() as s:
        assert save_service_state(s, profile_id, service) == 1

    with session_factory() as s:
        assert s.query(AssessmentRecordORM).count() == 2


def test_save_replaces_working_state(session_factory, profile_id):
    service = populated_service()
    with UnitOfWork(session_factory).begin() as s:
        save_service_state(s, profile_id, service)

    service.clear_assessment()
    service.add_incident(date(2024, 3, 1), 1, "only one")
    with UnitOfWork(session_factory).begin() as s:
        save_service_state(s, profile_id, service)

    with session_factory() as s:
        restored = load_service(s, profile_id)
        assert s.query(IncidentORM).count() == 1

    assert restored.get_answers() == {}
    assert [i.description for i in restored.get_incidents()] == ["only one"]
    # history survives clearing, including its snapshot of the old incidents
    assert len(restored.get_assessment_history()) == 1
    assert len(restored.get_assessment_history()[0].incidents) == 2


def test_history_records_stay_ordered(session_factory, profile_id):
    start = datetime(2024, 1, 1)
    ticks = iter(start + timedelta(hours=h) for h in range(10))
    service = DangerAssessmentService(clock=lambda: next(ticks))
    for _ in range(3):
        service.get_assessment_result()

    with UnitOfWork(session_factory).begin() as s:
        save_service_state(s, profile_id, service)
    with session_factory() as s:
        restored = load_service(s, profile_id)

    history = restored.get_assessment_history()
    assert [r.date for r in history] == [start + timedelta(hours=h) for h in (2, 1, 0)]
    assert all(r.model_version == "da-2024.1" for r in history)


def test_unknown_profile(session_factory):
    with session_factory() as s:
        with pytest.raises(ProfileNotFoundError):
            get_profile(s, 12345)
        with pytest.raises(ProfileNotFoundError):
            load_service(s, 12345)


def test_delete_profile_cascades(session_factory, profile_id):
    with UnitOfWork(session_factory).begin() as s:
        save_service_state(s, profile_id, populated_service())

    with UnitOfWork(session_factory).begin() as s:
        delete_profile(s, profile_id)

    with session_factory() as s:
        assert list_profiles(s) == []
        assert s.query(IncidentORM).count() == 0
        assert s.query(AssessmentRecordORM).count() == 0


class TestProfileSessions:
    def test_get_loads_and_caches(self, session_factory, profile_id):
        registry = ProfileSessions(session_factory)

        service = registry.get(profile_id)

        assert profile_id in registry
        assert registry.get(profile_id) is service

    def test_get_unknown_profile(self, session_factory):
        registry = ProfileSessions(session_factory)
        with pytest.raises(ProfileNotFoundError):
            registry.get(999)
        assert len(registry) == 0

    def test_persist(self, session_factory, profile_id):
        registry = ProfileSessions(session_factory)
        assert registry.persist(profile_id) == 0

        service = registry.get(profile_id)
        service.set_answer("7", True)
        service.get_assessment_result()
        assert registry.persist(profile_id) == 1

        registry.discard(profile_id)
        assert profile_id not in registry
        assert registry.get(profile_id).get_answers() == {"7": True}

    def test_eviction_saves_state(self, session_factory):
        with UnitOfWork(session_factory).begin() as s:
            ids = [create_profile(s, f"P{n}").id for n in range(3)]

        registry = ProfileSessions(session_factory, max_profiles=2)
        registry.get(ids[0]).add_incident(date(2024, 1, 1), 3, "unsaved")
        registry.get(ids[1])
        registry.get(ids[2])

        assert len(registry) == 2
        assert ids[0] not in registry

        with session_factory() as s:
            restored = load_service(s, ids[0])
        assert [i.description for i in restored.get_incidents()] == ["unsaved"]

    def test_persist_saves_a_service_pushed_out_of_memory(self, session_factory):
        with UnitOfWork(session_factory).begin() as s:
            first, second = (create_profile(s, name).id for name in ("A", "B"))

        registry = ProfileSessions(session_factory, max_profiles=1)
        held = registry.get(first)
        registry.get(second)
        assert first not in registry

        held.add_incident(date(2024, 5, 1), 4, "late edit")
        registry.persist(first, held)

        with session_factory() as s:
            restored = load_service(s, first)
        assert [i.description for i in restored.get_incidents()] == ["late edit"]

    def test_leased_service_stays_in_memory(self, session_factory):
        with UnitOfWork(session_factory).begin() as s:
            first, second, third = (create_profile(s, name).id for name in ("A", "B", "C"))

        registry = ProfileSessions(session_factory, max_profiles=1)
        with registry.lease(first) as service:
            registry.get(second)
            assert first in registry
            assert registry.get(first) is service
            service.set_answer("1", True)

        registry.get(third)
        assert len(registry) == 1
        with session_factory() as s:
            assert load_service(s, first).get_answers() == {"1": True}

    def test_failed_eviction_keeps_registry_bounded(
        self, session_factory, monkeypatch
    ):
        with UnitOfWork(session_factory).begin() as s:
            first, second = (create_profile(s, name).id for name in ("A", "B"))

        registry = ProfileSessions(session_factory, max_profiles=1)
        registry.get(first).set_answer("3", True)

        def broken_save(session, profile_id, service):
            raise DatabaseError("disk full", "save_service_state")

        monkeypatch.setattr("companion.application.api.save_service_state", broken_save)
        with pytest.raises(DatabaseError):
            registry.get(second)

        assert len(registry) == 1
        assert first in registry
        assert registry.get(first).get_answers() == {"3": True}
