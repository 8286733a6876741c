from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session, sessionmaker

from companion.application.api import ProfileSessions
from companion.domain.services import DangerAssessmentService
from companion.infrastructure.config import DatabaseConfig, get_settings
from companion.infrastructure.db import create_database_engine, create_session_factory
from companion.infrastructure.exceptions import CompanionError, ProfileNotFoundError
from companion.utils.seed import initialise_database


def get_db_config(request: Request) -> DatabaseConfig:
    config = getattr(request.app.state, "db_config", None)
    if config is None:
        config = get_settings().database
        request.app.state.db_config = config
    return config


def get_session_factory(request: Request) -> sessionmaker[Session]:
    cached_factory = getattr(request.app.state, "session_factory", None)
    if cached_factory is not None:
        return cached_factory

    engine = create_database_engine(get_db_config(request))
    initialise_database(engine)
    session_factory = create_session_factory(engine)

    request.app.state.session_factory = session_factory
    return session_factory


def get_db_session(request: Request) -> Generator[Session, None, None]:
    session_factory = get_session_factory(request)
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def get_profile_sessions(request: Request) -> ProfileSessions:
    registry = getattr(request.app.state, "profile_sessions", None)
    if registry is None:
        registry = ProfileSessions(
            get_session_factory(request),
            max_profiles=get_settings().assessment.max_profiles_in_memory,
        )
        request.app.state.profile_sessions = registry
    return registry


def get_profile_service(
    profile_id: int,
    registry: ProfileSessions = Depends(get_profile_sessions),
) -> Generator[DangerAssessmentService, None, None]:
    """Lease the profile's live service for the duration of one request."""
    try:
        service = registry.acquire(profile_id)
    except ProfileNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.user_message) from exc
    except CompanionError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.user_message) from exc
    try:
        yield service
    finally:
        registry.release(profile_id)
