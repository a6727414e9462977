from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.orm import Session, sessionmaker

from selfassessment.application.api import ExportClient
from selfassessment.application.progress import KeyValueStore, ProgressCache, SqlKeyValueStore
from selfassessment.application.reports import ReportBuilder
from selfassessment.infrastructure.airtable import AirtableClient
from selfassessment.infrastructure.config import DatabaseConfig, get_settings
from selfassessment.infrastructure.db import make_engine_and_session
from selfassessment.infrastructure.repositories_reference import (
    ReferenceRepository,
    ResponseRepository,
)
from selfassessment.infrastructure.uow import UnitOfWork


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

    _, session_factory = make_engine_and_session(get_db_config(request))
    request.app.state.session_factory = session_factory
    return session_factory


def get_airtable_client(request: Request) -> AirtableClient:
    client = getattr(request.app.state, "airtable_client", None)
    if client is None:
        client = AirtableClient()
        request.app.state.airtable_client = client
    return client


def get_export_client(request: Request) -> ExportClient:
    client = getattr(request.app.state, "export_client", None)
    if client is None:
        client = ExportClient()
        request.app.state.export_client = client
    return client


def get_reference_repository(
    client: AirtableClient = Depends(get_airtable_client),
) -> ReferenceRepository:
    return ReferenceRepository(client)


def get_response_repository(
    client: AirtableClient = Depends(get_airtable_client),
) -> ResponseRepository:
    return ResponseRepository(client)


def get_report_builder(
    reference: ReferenceRepository = Depends(get_reference_repository),
    responses: ResponseRepository = Depends(get_response_repository),
) -> ReportBuilder:
    return ReportBuilder(reference, responses)


def get_browser_session(request: Request) -> str:
    """Id assigned to the browser by the session-cookie middleware."""
    return request.state.browser_session


def get_progress_store(
    request: Request, browser_session: str = Depends(get_browser_session)
) -> KeyValueStore:
    return SqlKeyValueStore(UnitOfWork(get_session_factory(request)), browser_session)


def get_progress_cache(kv: KeyValueStore = Depends(get_progress_store)) -> ProgressCache:
    return ProgressCache(kv)
