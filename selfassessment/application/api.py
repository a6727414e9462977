"""
Application API layer.

High-level operations used by both the JSON API and the HTML pages: starting
an assessment, building the question flow, completing an assessment and
calling the external export services.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from ..domain.flow import QuestionFlow, flatten_structure
from ..domain.models import AssessmentResponse, Category, CompanyType, ResponseStatus
from ..domain.schemas import ExportFormInput, extract_answers
from ..domain.services import build_response_content
from ..infrastructure import mutations
from ..infrastructure.airtable import AirtableClient
from ..infrastructure.config import ExportConfig, get_settings
from ..infrastructure.exceptions import (
    ConfigurationError,
    ExportError,
    MalformedRecordError,
    MissingPrerequisiteError,
    RecordNotFoundError,
    RecordStoreError,
    log_error_details,
)
from ..infrastructure.logging import get_logger, log_operation, set_context
from ..infrastructure.repositories_reference import ReferenceRepository, ResponseRepository
from .progress import AnswerSync, ProgressCache, SyncStatus
from .reports import ReportBuilder, with_answers

logger = get_logger(__name__)


@log_operation("start_assessment")
async def start_assessment(
    client: AirtableClient,
    reference: ReferenceRepository,
    company_type: str | None,
    initial_goal: str,
) -> tuple[CompanyType, mutations.MutationResult]:
    """
    Resolve the selected company type and create a response for it.

    Raises:
        MissingPrerequisiteError: If no company type is selected or it is unknown

    Example:
        >>> company_type, result = await start_assessment(client, reference, "startup", "Grow")
        >>> result.data["record_id"]
    """
    resolved = await reference.resolve_company_type(company_type)
    set_context(company_type=resolved.text)
    result = await mutations.create_response(client, initial_goal, resolved.id)
    return resolved, result


async def require_response(responses: ResponseRepository, record_id: str) -> AssessmentResponse:
    response = await responses.get_response(record_id)
    if response is None:
        raise RecordNotFoundError(AssessmentResponse.table, record_id)
    set_context(response_id=record_id)
    return response


def stored_answers(response: AssessmentResponse) -> dict[str, str]:
    """Answers saved on the response; unreadable content counts as none."""
    try:
        return extract_answers(response.response_content)
    except ValueError as e:
        logger.warning(f"Ignoring unreadable content of response {response.id}: {str(e)}")
        return {}


@log_operation("load_question_flow")
async def load_question_flow(
    reference: ReferenceRepository,
    response: AssessmentResponse,
    answers: Mapping[str, str] | None = None,
) -> tuple[QuestionFlow, dict[str, Category]]:
    """
    Question flow for the response's company type, positioned on the first
    unanswered question, plus its categories by id.

    Raises:
        MissingPrerequisiteError: If the response has no company type
    """
    if not response.company_type_id:
        raise MissingPrerequisiteError("company_type", "Response has no company type")

    structure = await reference.get_assessment_structure(response.company_type_id)
    flow = QuestionFlow(
        flatten_structure(structure),
        answers=stored_answers(response) if answers is None else answers,
    )
    flow.go_to(flow.first_unanswered_index())
    return flow, {block.category.id: block.category for block in structure}


@log_operation("complete_assessment")
async def complete_assessment(
    client: AirtableClient,
    builder: ReportBuilder,
    response: AssessmentResponse,
    answers: Mapping[str, str] | None = None,
) -> mutations.MutationResult:
    """
    Score the answers and store the final document, marking the response Completed.

    ``answers`` overrides what is stored on the response, so the latest local
    choices are scored even when the last sync did not reach the store.
    """
    if response.status == ResponseStatus.COMPLETED:
        logger.info(f"Response {response.id} is already completed")
        return mutations.MutationResult(success=True, data={"id": response.id})

    if answers is not None:
        response = with_answers(response, answers)

    try:
        company_type, scores, _ = await builder.score(response)
    except (MalformedRecordError, MissingPrerequisiteError) as e:
        error_details = log_error_details(e, {"operation": "complete_assessment"})
        logger.error("Cannot score assessment", extra=error_details)
        return mutations.MutationResult(success=False, error=e.message, error_type=type(e).__name__)

    content = build_response_content(scores, company_type.id, response.initial_goal)
    return await mutations.update_assessment_results(client, response.id, content)


class ExportClient:
    """Calls the external PDF generation and email delivery services."""

    def __init__(
        self,
        config: ExportConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or get_settings().export
        self._transport = transport

    async def _post(self, url: str | None, payload: dict[str, Any], export_format: str) -> httpx.Response:
        if not url:
            raise ConfigurationError(
                f"No {export_format} export endpoint configured",
                config_key=f"EXPORT_{export_format.upper()}_URL",
            )
        try:
            async with httpx.AsyncClient(
                timeout=self.config.timeout_seconds, transport=self._transport
            ) as http:
                response = await http.post(url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"{export_format} export failed: {str(e)}")
            raise ExportError(f"{export_format} export failed: {str(e)}", export_format) from e
        return response

    @log_operation("export_pdf")
    async def generate_pdf(self, form: ExportFormInput, assessment_id: str) -> bytes:
        response = await self._post(self.config.pdf_url, form.to_payload(assessment_id), "pdf")
        return response.content

    @log_operation("export_email")
    async def send_email(self, form: ExportFormInput, assessment_id: str) -> dict[str, Any]:
        response = await self._post(self.config.email_url, form.to_payload(assessment_id), "email")
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}


async def sync_progress(
    client: AirtableClient, record_id: str, cache: ProgressCache
) -> SyncStatus:
    """
    Push the cached answers to the response, best effort.

    The outcome is remembered in the cache so later pages can show whether the
    stored answers are behind the local ones.
    """

    async def push(answers: dict[str, str]) -> None:
        result = await mutations.save_progress(client, record_id, answers)
        if not result.success:
            raise RecordStoreError(result.error or "Saving progress failed", operation="save_progress")

    sync = AnswerSync(lambda: cache.answers, push)
    await sync.sync()
    cache.record_sync_status(sync.status)
    return sync.status
