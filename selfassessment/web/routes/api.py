from __future__ import annotations

import io
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response, StreamingResponse

from selfassessment.application import api as app_api
from selfassessment.application.progress import ProgressCache
from selfassessment.application.reports import ReportBuilder
from selfassessment.domain.schemas import ExportFormInput, validate_input
from selfassessment.infrastructure import mutations
from selfassessment.infrastructure.airtable import AirtableClient
from selfassessment.infrastructure.config import get_settings
from selfassessment.infrastructure.exceptions import (
    ConfigurationError,
    ExportError,
    InvalidTransitionError,
    MissingPrerequisiteError,
    RecordNotFoundError,
    RecordStoreError,
    SelfAssessmentError,
    ValidationError,
)
from selfassessment.utils.exports import make_json_export_payload, make_xlsx_export_bytes
from selfassessment.web.dependencies import (
    get_airtable_client,
    get_export_client,
    get_progress_cache,
    get_reference_repository,
    get_report_builder,
    get_response_repository,
)
from selfassessment.web.schemas import (
    AnswerOption,
    AssessmentCreateRequest,
    AssessmentCreateResponse,
    CategoryProgressOut,
    CompanyDetailsRequest,
    CompanyTypeOut,
    CompleteRequest,
    ExportRequest,
    ExportResponse,
    MutationResponse,
    ProgressResponse,
    ProgressUpdateRequest,
    StructureCategory,
    StructureQuestion,
)

router = APIRouter(prefix="/api")
logger = logging.getLogger(__name__)

_ERROR_STATUS: list[tuple[type[SelfAssessmentError], int]] = [
    (RecordNotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (MissingPrerequisiteError, status.HTTP_400_BAD_REQUEST),
    (ConfigurationError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ExportError, status.HTTP_502_BAD_GATEWAY),
    (RecordStoreError, status.HTTP_502_BAD_GATEWAY),
]

_MUTATION_STATUS = {
    "InvalidTransitionError": status.HTTP_409_CONFLICT,
    "ValidationError": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "RecordNotFoundError": status.HTTP_404_NOT_FOUND,
    "MissingPrerequisiteError": status.HTTP_400_BAD_REQUEST,
    "MalformedRecordError": status.HTTP_502_BAD_GATEWAY,
}


def _http_error(exc: SelfAssessmentError) -> HTTPException:
    logger.warning("Request failed: %s", exc.message)
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.user_message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.user_message)


def _mutation_response(result: mutations.MutationResult) -> MutationResponse:
    if not result.success:
        status_code = _MUTATION_STATUS.get(result.error_type or "", status.HTTP_502_BAD_GATEWAY)
        raise HTTPException(status_code=status_code, detail=result.error)
    return MutationResponse(success=True, data=result.data)


@router.get("/health")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/company-types", response_model=list[CompanyTypeOut])
async def list_company_types(reference=Depends(get_reference_repository)) -> list[CompanyTypeOut]:
    try:
        company_types = await reference.list_company_types()
    except SelfAssessmentError as exc:
        raise _http_error(exc) from exc
    return [CompanyTypeOut(id=ct.id, text=ct.text) for ct in company_types]


@router.post(
    "/assessments",
    response_model=AssessmentCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_assessment(
    payload: AssessmentCreateRequest,
    client: AirtableClient = Depends(get_airtable_client),
    reference=Depends(get_reference_repository),
    cache: ProgressCache = Depends(get_progress_cache),
) -> AssessmentCreateResponse:
    try:
        company_type, result = await app_api.start_assessment(
            client, reference, payload.company_type, payload.initial_goal
        )
    except SelfAssessmentError as exc:
        raise _http_error(exc) from exc

    data = _mutation_response(result).data or {}
    cache.clear()
    cache.bind(data["record_id"])
    return AssessmentCreateResponse(
        record_id=data["record_id"],
        response_id=data["response_id"],
        company_type=CompanyTypeOut(id=company_type.id, text=company_type.text),
    )


@router.put("/assessments/{record_id}/company-details", response_model=MutationResponse)
async def update_company_details(
    record_id: str,
    payload: CompanyDetailsRequest,
    client: AirtableClient = Depends(get_airtable_client),
    responses=Depends(get_response_repository),
) -> MutationResponse:
    try:
        await app_api.require_response(responses, record_id)
    except SelfAssessmentError as exc:
        raise _http_error(exc) from exc

    result = await mutations.update_company_details(
        client, record_id, payload.model_dump(exclude_none=True)
    )
    return _mutation_response(result)


@router.get("/assessments/{record_id}/structure", response_model=list[StructureCategory])
async def get_structure(
    record_id: str,
    reference=Depends(get_reference_repository),
    responses=Depends(get_response_repository),
) -> list[StructureCategory]:
    try:
        response = await app_api.require_response(responses, record_id)
        if not response.company_type_id:
            raise MissingPrerequisiteError("company_type", "Response has no company type")
        structure = await reference.get_assessment_structure(response.company_type_id)
    except SelfAssessmentError as exc:
        raise _http_error(exc) from exc

    return [
        StructureCategory(
            id=block.category.id,
            text=block.category.text,
            description=block.category.description,
            questions=[
                StructureQuestion(
                    id=q.id,
                    question_id=q.display_id,
                    text=q.text,
                    answers=[
                        AnswerOption(id=a.id, text=a.text, description=a.description, score=a.score)
                        for a in block.answers.get(q.id, [])
                    ],
                )
                for q in block.questions
            ],
        )
        for block in structure
    ]


async def _progress_response(reference, response, cache: ProgressCache) -> ProgressResponse:
    flow, _ = await app_api.load_question_flow(reference, response, answers=cache.answers)
    return ProgressResponse(
        record_id=response.id,
        answers=cache.answers,
        sync_status=cache.sync_status(),
        progress=flow.progress_percentage(),
        categories=[
            CategoryProgressOut(
                category_id=cp.category_id,
                total=cp.total,
                answered=cp.answered,
                progress=cp.progress,
            )
            for cp in flow.categories_progress()
        ],
    )


@router.get("/assessments/{record_id}/progress", response_model=ProgressResponse)
async def get_progress(
    record_id: str,
    reference=Depends(get_reference_repository),
    responses=Depends(get_response_repository),
    cache: ProgressCache = Depends(get_progress_cache),
) -> ProgressResponse:
    try:
        response = await app_api.require_response(responses, record_id)
        cache.bind(record_id, app_api.stored_answers(response))
        return await _progress_response(reference, response, cache)
    except SelfAssessmentError as exc:
        raise _http_error(exc) from exc


@router.put("/assessments/{record_id}/progress", response_model=ProgressResponse)
async def sync_progress(
    record_id: str,
    payload: ProgressUpdateRequest,
    client: AirtableClient = Depends(get_airtable_client),
    reference=Depends(get_reference_repository),
    responses=Depends(get_response_repository),
    cache: ProgressCache = Depends(get_progress_cache),
) -> ProgressResponse:
    """Cache the posted answers locally, then push them to the store (best effort)."""
    try:
        response = await app_api.require_response(responses, record_id)
        cache.bind(record_id, app_api.stored_answers(response))
        for question_id, answer_id in payload.answers.items():
            cache.select_answer(question_id, answer_id)
        await app_api.sync_progress(client, record_id, cache)
        return await _progress_response(reference, response, cache)
    except SelfAssessmentError as exc:
        raise _http_error(exc) from exc


@router.post("/assessments/{record_id}/complete", response_model=MutationResponse)
async def complete_assessment(
    record_id: str,
    payload: CompleteRequest | None = None,
    client: AirtableClient = Depends(get_airtable_client),
    responses=Depends(get_response_repository),
    builder: ReportBuilder = Depends(get_report_builder),
) -> MutationResponse:
    try:
        response = await app_api.require_response(responses, record_id)
        result = await app_api.complete_assessment(
            client, builder, response, answers=payload.answers if payload else None
        )
    except SelfAssessmentError as exc:
        raise _http_error(exc) from exc
    return _mutation_response(result)


@router.get("/assessments/{record_id}/results")
async def get_results(
    record_id: str,
    builder: ReportBuilder = Depends(get_report_builder),
) -> dict:
    try:
        report = await builder.build(record_id)
    except SelfAssessmentError as exc:
        raise _http_error(exc) from exc
    return report.to_dict()


@router.get("/assessments/{record_id}/export/json")
async def export_results_json(
    record_id: str,
    builder: ReportBuilder = Depends(get_report_builder),
) -> Response:
    try:
        report = await builder.build(record_id)
    except SelfAssessmentError as exc:
        raise _http_error(exc) from exc
    return Response(
        content=make_json_export_payload(report),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="assessment_{record_id}.json"'},
    )


@router.get("/assessments/{record_id}/export/xlsx")
async def export_results_xlsx(
    record_id: str,
    builder: ReportBuilder = Depends(get_report_builder),
) -> StreamingResponse:
    if not get_settings().app.enable_xlsx_export:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="XLSX export is disabled")
    try:
        report = await builder.build(record_id)
    except SelfAssessmentError as exc:
        raise _http_error(exc) from exc

    buffer = io.BytesIO(make_xlsx_export_bytes(report))
    return StreamingResponse(
        buffer,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="assessment_{record_id}.xlsx"'},
    )


def _export_form(payload: ExportRequest) -> ExportFormInput:
    validation = validate_input(ExportFormInput, payload.model_dump())
    if not validation.success or validation.data is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=[error.model_dump() for error in validation.errors],
        )
    return ExportFormInput(**validation.data)


@router.post("/assessments/{record_id}/export/pdf")
async def export_results_pdf(
    record_id: str,
    payload: ExportRequest,
    exporter=Depends(get_export_client),
) -> Response:
    form = _export_form(payload)
    try:
        content = await exporter.generate_pdf(form, record_id)
    except SelfAssessmentError as exc:
        raise _http_error(exc) from exc
    filename = get_settings().export.pdf_filename
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/assessments/{record_id}/export/email", response_model=ExportResponse)
async def export_results_email(
    record_id: str,
    payload: ExportRequest,
    exporter=Depends(get_export_client),
) -> ExportResponse:
    form = _export_form(payload)
    try:
        await exporter.send_email(form, record_id)
    except SelfAssessmentError as exc:
        raise _http_error(exc) from exc
    return ExportResponse(status="ok", message=f"Tulemused saadeti aadressile {form.email}")
