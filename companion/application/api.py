"""
Application API layer with error handling and validation.

Use cases for assessment profiles: creating them, and moving a profile's
`DangerAssessmentService` state in and out of the database. The engine
itself stays free of I/O; this module is its persistence hook.
"""

from __future__ import annotations

import threading
from collections import Counter, OrderedDict
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..domain.models import AssessmentState
from ..domain.questions import DEFAULT_SCORING_MODEL, ScoringModel, get_scoring_model
from ..domain.services import DangerAssessmentService
from ..infrastructure.exceptions import (
    CompanionError,
    handle_database_error,
    log_error_details,
)
from ..infrastructure.logging import get_logger, log_operation
from ..infrastructure.models import ProfileORM
from ..infrastructure.repositories import (
    AnswerRepo,
    AssessmentRecordRepo,
    IncidentRepo,
    ProfileRepo,
)
from ..infrastructure.uow import UnitOfWork

logger = get_logger(__name__)


def _wrap_unexpected(e: Exception, operation: str, user_message: str) -> CompanionError:
    if isinstance(e, SQLAlchemyError):
        return handle_database_error(e, operation)
    error_details = log_error_details(e, {"operation": operation})
    logger.error(f"Unexpected failure in {operation}", extra={"error_details": error_details})
    return CompanionError(
        f"Failed to {operation.replace('_', ' ')}",
        details=error_details,
        user_message=user_message,
    )


@log_operation("create_profile")
def create_profile(
    session: Session,
    name: str,
    notes: str | None = None,
    model: ScoringModel = DEFAULT_SCORING_MODEL,
) -> ProfileORM:
    """
    Create a new assessment profile.

    Raises:
        ValidationError: If the name is empty
        DatabaseError: If the profile cannot be stored

    Example:
        >>> profile = create_profile(session, "Primary")
    """
    return ProfileRepo(session).create(
        name=name, notes=notes, scoring_model_version=model.version
    )


@log_operation("list_profiles")
def list_profiles(session: Session) -> list[ProfileORM]:
    try:
        return ProfileRepo(session).list_all()
    except CompanionError:
        raise
    except Exception as e:
        raise _wrap_unexpected(e, "list_profiles", "Unable to load profiles.") from e


def get_profile(session: Session, profile_id: int) -> ProfileORM:
    """Raises ProfileNotFoundError for unknown ids."""
    return ProfileRepo(session).get_by_id_required(profile_id)


@log_operation("delete_profile")
def delete_profile(session: Session, profile_id: int) -> None:
    repo = ProfileRepo(session)
    repo.delete(repo.get_by_id_required(profile_id))


@log_operation("save_service_state")
def save_service_state(
    session: Session, profile_id: int, service: DangerAssessmentService
) -> int:
    """
    Write a service's working state and history for a profile.

    Answers and incidents are replaced wholesale; history records are
    appended only if not stored yet, so repeated saves are idempotent.

    Returns:
        Number of history records newly stored
    """
    get_profile(session, profile_id)
    state = service.export_state()
    try:
        AnswerRepo(session).replace_all(profile_id, state.answers)
        IncidentRepo(session).replace_all(profile_id, state.incidents)
        added = AssessmentRecordRepo(session).append_missing(profile_id, state.history)
    except CompanionError:
        raise
    except Exception as e:
        raise _wrap_unexpected(
            e, "save_service_state", "Unable to save your assessment. Please try again."
        ) from e
    logger.info(
        "Saved profile %s: %d answers, %d incidents, %d new records",
        profile_id,
        len(state.answers),
        len(state.incidents),
        added,
    )
    return added


@log_operation("load_service")
def load_service(
    session: Session,
    profile_id: int,
    model: ScoringModel | None = None,
) -> DangerAssessmentService:
    """Rebuild a profile's DangerAssessmentService from storage."""
    profile = get_profile(session, profile_id)
    if model is None:
        model = get_scoring_model(profile.scoring_model_version)
    try:
        state = AssessmentState(
            answers=AnswerRepo(session).map_for_profile(profile_id),
            incidents=IncidentRepo(session).list_for_profile(profile_id),
            history=AssessmentRecordRepo(session).list_for_profile(profile_id),
            model_version=profile.scoring_model_version,
        )
    except CompanionError:
        raise
    except Exception as e:
        raise _wrap_unexpected(
            e, "load_service", "Unable to load your assessment. Please try again."
        ) from e
    return DangerAssessmentService.from_state(state, model=model)


class ProfileSessions:
    """
    Live assessment services keyed by profile id.

    Services are loaded from storage on first use and kept in a bounded
    least-recently-used map. A service pushed out of the map is saved first
    so no working state is lost, and a service leased to a caller is never
    pushed out until it is released. The map only grows past
    ``max_profiles`` while every entry is leased.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        max_profiles: int = 256,
        model_resolver: Callable[[str], ScoringModel] = get_scoring_model,
    ):
        self.session_factory = session_factory
        self.max_profiles = max_profiles
        self.model_resolver = model_resolver
        self._services: OrderedDict[int, DangerAssessmentService] = OrderedDict()
        self._leases: Counter[int] = Counter()
        self._lock = threading.RLock()

    def __contains__(self, profile_id: int) -> bool:
        with self._lock:
            return profile_id in self._services

    def __len__(self) -> int:
        with self._lock:
            return len(self._services)

    def get(self, profile_id: int) -> DangerAssessmentService:
        """Raises ProfileNotFoundError when the profile does not exist."""
        with self._lock:
            service = self._services.get(profile_id)
            if service is not None:
                self._services.move_to_end(profile_id)
                return service

            with UnitOfWork(self.session_factory, "load profile").begin() as s:
                profile = get_profile(s, profile_id)
                model = self.model_resolver(profile.scoring_model_version)
                service = load_service(s, profile_id, model=model)

            # make room first: a failed save leaves the map as it was
            self._evict(self.max_profiles - 1)
            self._services[profile_id] = service
            return service

    def acquire(self, profile_id: int) -> DangerAssessmentService:
        """Return the live service and pin it in memory until ``release``."""
        with self._lock:
            service = self.get(profile_id)
            self._leases[profile_id] += 1
            return service

    def release(self, profile_id: int) -> None:
        with self._lock:
            self._leases[profile_id] -= 1
            if self._leases[profile_id] <= 0:
                del self._leases[profile_id]

    @contextmanager
    def lease(self, profile_id: int) -> Iterator[DangerAssessmentService]:
        service = self.acquire(profile_id)
        try:
            yield service
        finally:
            self.release(profile_id)

    def persist(self, profile_id: int, service: DangerAssessmentService | None = None) -> int:
        """
        Save a profile's service.

        A service passed in is saved even when it is no longer in the map.
        Without one, the live service is saved; a profile not in memory has
        nothing unsaved and returns 0.
        """
        with self._lock:
            if service is None:
                service = self._services.get(profile_id)
                if service is None:
                    return 0
            with UnitOfWork(self.session_factory, "save profile").begin() as s:
                return save_service_state(s, profile_id, service)

    def discard(self, profile_id: int) -> None:
        with self._lock:
            self._services.pop(profile_id, None)

    def _evict(self, limit: int) -> None:
        while len(self._services) > limit:
            profile_id = next((pid for pid in self._services if pid not in self._leases), None)
            if profile_id is None:
                logger.warning(
                    "All %d live profiles are in use; keeping them past the limit of %d",
                    len(self._services),
                    self.max_profiles,
                )
                return
            self.persist(profile_id, self._services[profile_id])
            self._services.pop(profile_id)
            logger.debug("Evicted profile %s from memory", profile_id)
