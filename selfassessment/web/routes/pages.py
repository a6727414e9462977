from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, Form, Query, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates

from selfassessment.application import api as app_api
from selfassessment.application.progress import ProgressCache, SyncStatus
from selfassessment.application.reports import ReportBuilder
from selfassessment.domain.flow import FlowAction, QuestionFlow, shuffled_answers
from selfassessment.domain.models import AssessmentResponse, ResponseStatus
from selfassessment.domain.schemas import (
    AssessmentSetupInput,
    CompanyDetailsInput,
    ExportFormInput,
    ValidationResponse,
    validate_input,
)
from selfassessment.infrastructure import mutations
from selfassessment.infrastructure.airtable import AirtableClient
from selfassessment.infrastructure.config import get_settings
from selfassessment.infrastructure.exceptions import (
    MissingPrerequisiteError,
    RecordNotFoundError,
    RecordStoreError,
    SelfAssessmentError,
    ValidationError,
)
from selfassessment.infrastructure.logging import get_logger
from selfassessment.utils.results_chart import (
    figure_json,
    make_results_bar_chart,
    make_results_radar,
    report_frame,
)
from selfassessment.web.dependencies import (
    get_airtable_client,
    get_export_client,
    get_progress_cache,
    get_reference_repository,
    get_report_builder,
    get_response_repository,
)

router = APIRouter(tags=["pages"])
logger = get_logger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATE_DIR))


def _base_context() -> dict[str, object]:
    settings = get_settings()
    return {
        "app_title": settings.app.title,
        "enable_exports": settings.app.enable_exports,
        "enable_xlsx_export": settings.app.enable_xlsx_export,
    }


def _render(
    request: Request, name: str, context: dict[str, object], status_code: int = 200
) -> HTMLResponse:
    return templates.TemplateResponse(
        request, name, {**_base_context(), **context}, status_code=status_code
    )


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


_FIELD_LABELS = {
    "company_type": "Ettevõtte tüüp",
    "initial_goal": "Eesmärk",
    "contact_name": "Kontaktisiku nimi",
    "contact_email": "E-post",
    "company_name": "Ettevõtte nimi",
    "name": "Nimi",
    "email": "E-post",
    "organisation_name": "Organisatsiooni nimi",
    "organisation_reg_number": "Registrikood",
}


def _form_errors(validation: ValidationResponse) -> list[str]:
    return [
        f"{_FIELD_LABELS.get(e.field, e.field)}: palun kontrollige sisestatud väärtust"
        for e in validation.errors
    ]


def _error_page(request: Request, exc: SelfAssessmentError) -> HTMLResponse:
    if isinstance(exc, (MissingPrerequisiteError, RecordNotFoundError)):
        status_code, retry = status.HTTP_404_NOT_FOUND, False
    elif isinstance(exc, RecordStoreError):
        status_code, retry = status.HTTP_502_BAD_GATEWAY, True
    else:
        status_code, retry = status.HTTP_400_BAD_REQUEST, False
    logger.warning(f"Showing error page: {exc.message}")
    return _render(
        request,
        "error.html",
        {"message": exc.user_message, "retry": retry},
        status_code=status_code,
    )


# ---------- Setup ----------


async def _render_setup(
    request: Request,
    reference,
    selected: str | None = None,
    goal: str = "",
    errors: list[str] | None = None,
    status_code: int = 200,
) -> HTMLResponse:
    try:
        company_types = await reference.list_company_types()
    except SelfAssessmentError as exc:
        return _error_page(request, exc)
    return _render(
        request,
        "setup.html",
        {
            "company_types": company_types,
            "selected": selected,
            "goal": goal,
            "errors": errors or [],
        },
        status_code=status_code,
    )


@router.get("/", response_class=HTMLResponse)
async def setup_page(
    request: Request,
    company_type: str | None = Query(None, alias="type"),
    reference=Depends(get_reference_repository),
) -> HTMLResponse:
    return await _render_setup(request, reference, selected=company_type)


@router.post("/", response_class=HTMLResponse)
async def start_assessment(
    request: Request,
    company_type: str = Form(""),
    initial_goal: str = Form(""),
    client: AirtableClient = Depends(get_airtable_client),
    reference=Depends(get_reference_repository),
    cache: ProgressCache = Depends(get_progress_cache),
) -> Response:
    validation = validate_input(
        AssessmentSetupInput, {"company_type": company_type, "initial_goal": initial_goal}
    )
    if not validation.success:
        return await _render_setup(
            request,
            reference,
            selected=company_type,
            goal=initial_goal,
            errors=_form_errors(validation),
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    try:
        _, result = await app_api.start_assessment(client, reference, company_type, initial_goal)
    except SelfAssessmentError as exc:
        return _error_page(request, exc)

    if not result.success or not result.data:
        return await _render_setup(
            request,
            reference,
            selected=company_type,
            goal=initial_goal,
            errors=["Hindamise alustamine ebaõnnestus. Palun proovige uuesti."],
            status_code=status.HTTP_502_BAD_GATEWAY,
        )

    record_id = result.data["record_id"]
    cache.clear()
    cache.bind(record_id)
    return _redirect(f"/assessment/{record_id}/details")


# ---------- Company details ----------


@router.get("/assessment/{record_id}/details", response_class=HTMLResponse)
async def details_page(
    request: Request,
    record_id: str,
    responses=Depends(get_response_repository),
) -> Response:
    try:
        response = await app_api.require_response(responses, record_id)
    except SelfAssessmentError as exc:
        return _error_page(request, exc)
    if response.status != ResponseStatus.NEW:
        return _redirect(f"/assessment/{record_id}/questions")
    return _render(request, "details.html", {"response": response, "form": {}, "errors": []})


@router.post("/assessment/{record_id}/details", response_class=HTMLResponse)
async def submit_details(
    request: Request,
    record_id: str,
    contact_name: str = Form(""),
    contact_email: str = Form(""),
    company_name: str = Form(""),
    client: AirtableClient = Depends(get_airtable_client),
    responses=Depends(get_response_repository),
) -> Response:
    try:
        response = await app_api.require_response(responses, record_id)
        if not response.company_type_id:
            raise MissingPrerequisiteError("company_type", "Response has no company type")
    except SelfAssessmentError as exc:
        return _error_page(request, exc)

    if response.status != ResponseStatus.NEW:
        return _redirect(f"/assessment/{record_id}/questions")

    form = {
        "contact_name": contact_name,
        "contact_email": contact_email,
        "company_name": company_name,
        "company_type": response.company_type_id,
    }
    validation = validate_input(CompanyDetailsInput, form)
    if not validation.success:
        return _render(
            request,
            "details.html",
            {"response": response, "form": form, "errors": _form_errors(validation)},
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    result = await mutations.update_company_details(client, record_id, form)
    if not result.success:
        return _render(
            request,
            "details.html",
            {
                "response": response,
                "form": form,
                "errors": ["Andmete salvestamine ebaõnnestus. Palun proovige uuesti."],
            },
            status_code=status.HTTP_502_BAD_GATEWAY,
        )
    return _redirect(f"/assessment/{record_id}/questions")


# ---------- Questions ----------


async def _load_flow(record_id: str, responses, reference, cache: ProgressCache):
    response = await app_api.require_response(responses, record_id)
    answers = cache.bind(record_id, app_api.stored_answers(response))
    flow, categories = await app_api.load_question_flow(reference, response, answers=answers)
    return response, flow, categories


def _render_question(
    request: Request,
    response: AssessmentResponse,
    flow: QuestionFlow,
    categories: dict,
    error: str | None = None,
    status_code: int = 200,
) -> HTMLResponse:
    item = flow.current
    return _render(
        request,
        "question.html",
        {
            "response": response,
            "flow": flow,
            "item": item,
            "category": categories.get(item.category_id) if item else None,
            "options": shuffled_answers(item, seed=response.id) if item else [],
            "progress": flow.progress_percentage(),
            "category_progress": [
                (categories.get(cp.category_id), cp) for cp in flow.categories_progress()
            ],
            "error": error,
        },
        status_code=status_code,
    )


async def _finalize(
    record_id: str,
    response: AssessmentResponse,
    client: AirtableClient,
    builder: ReportBuilder,
    cache: ProgressCache,
) -> RedirectResponse:
    """
    Sync and complete, then go to the results whether or not that succeeded.

    The results page scores the cached answers while the response is not yet
    completed and shows that the store is behind.
    """
    await app_api.sync_progress(client, record_id, cache)
    try:
        result = await app_api.complete_assessment(client, builder, response, answers=cache.answers)
    except SelfAssessmentError as exc:
        logger.warning(f"Completing {record_id} failed: {exc.message}")
        result = mutations.MutationResult(success=False, error=exc.message)
    if not result.success:
        cache.record_sync_status(SyncStatus.OFFLINE)
    return _redirect(f"/assessment/{record_id}/results")


@router.get("/assessment/{record_id}/questions", response_class=HTMLResponse)
async def questions_page(
    request: Request,
    record_id: str,
    index: int | None = Query(None, ge=0),
    responses=Depends(get_response_repository),
    reference=Depends(get_reference_repository),
    cache: ProgressCache = Depends(get_progress_cache),
) -> Response:
    try:
        response, flow, categories = await _load_flow(record_id, responses, reference, cache)
    except SelfAssessmentError as exc:
        return _error_page(request, exc)

    if response.status == ResponseStatus.COMPLETED:
        return _redirect(f"/assessment/{record_id}/results")
    if response.status == ResponseStatus.NEW:
        return _redirect(f"/assessment/{record_id}/details")
    if not flow.total:
        return _error_page(
            request,
            MissingPrerequisiteError("questions", "No questions for this company type"),
        )

    if index is not None:
        flow.go_to(index)
    return _render_question(request, response, flow, categories)


@router.post("/assessment/{record_id}/answer", response_class=HTMLResponse)
async def answer_question(
    request: Request,
    record_id: str,
    question_id: str = Form(...),
    answer_id: str = Form(...),
    index: int = Form(0),
    client: AirtableClient = Depends(get_airtable_client),
    responses=Depends(get_response_repository),
    reference=Depends(get_reference_repository),
    builder: ReportBuilder = Depends(get_report_builder),
    cache: ProgressCache = Depends(get_progress_cache),
) -> Response:
    try:
        response, flow, categories = await _load_flow(record_id, responses, reference, cache)
    except SelfAssessmentError as exc:
        return _error_page(request, exc)
    if response.status == ResponseStatus.COMPLETED:
        return _redirect(f"/assessment/{record_id}/results")

    flow.go_to(index)
    if flow.current is None or flow.current.question_id != question_id:
        # Stale form: show the question that is at that position now
        return _redirect(f"/assessment/{record_id}/questions?index={flow.index}")

    try:
        action = flow.select(answer_id)
    except ValidationError as exc:
        return _render_question(
            request,
            response,
            flow,
            categories,
            error=exc.user_message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    cache.select_answer(question_id, answer_id)
    if action == FlowAction.FINALIZE:
        return await _finalize(record_id, response, client, builder, cache)

    await app_api.sync_progress(client, record_id, cache)
    return _redirect(f"/assessment/{record_id}/questions?index={flow.index}")


@router.post("/assessment/{record_id}/next", response_class=HTMLResponse)
async def next_question(
    request: Request,
    record_id: str,
    index: int = Form(0),
    client: AirtableClient = Depends(get_airtable_client),
    responses=Depends(get_response_repository),
    reference=Depends(get_reference_repository),
    builder: ReportBuilder = Depends(get_report_builder),
    cache: ProgressCache = Depends(get_progress_cache),
) -> Response:
    try:
        response, flow, categories = await _load_flow(record_id, responses, reference, cache)
    except SelfAssessmentError as exc:
        return _error_page(request, exc)

    flow.go_to(index)
    action = flow.next()
    if action == FlowAction.FINALIZE:
        return await _finalize(record_id, response, client, builder, cache)
    if action == FlowAction.BLOCKED:
        return _render_question(
            request, response, flow, categories, error="Palun vali vastus enne jätkamist."
        )
    return _redirect(f"/assessment/{record_id}/questions?index={flow.index}")


@router.post("/assessment/{record_id}/previous", response_class=HTMLResponse)
async def previous_question(
    record_id: str,
    index: int = Form(0),
) -> Response:
    return _redirect(f"/assessment/{record_id}/questions?index={max(index - 1, 0)}")


@router.post("/assessment/{record_id}/complete", response_class=HTMLResponse)
async def complete_assessment(
    request: Request,
    record_id: str,
    client: AirtableClient = Depends(get_airtable_client),
    responses=Depends(get_response_repository),
    builder: ReportBuilder = Depends(get_report_builder),
    cache: ProgressCache = Depends(get_progress_cache),
) -> Response:
    try:
        response = await app_api.require_response(responses, record_id)
    except SelfAssessmentError as exc:
        return _error_page(request, exc)
    if response.status == ResponseStatus.NEW:
        return _redirect(f"/assessment/{record_id}/details")
    cache.bind(record_id, app_api.stored_answers(response))
    return await _finalize(record_id, response, client, builder, cache)


# ---------- Results ----------


async def _render_results(
    request: Request,
    record_id: str,
    responses,
    builder: ReportBuilder,
    cache: ProgressCache,
    export_errors: list[str] | None = None,
    export_notice: str | None = None,
    export_form: dict | None = None,
    status_code: int = 200,
) -> HTMLResponse:
    try:
        response = await app_api.require_response(responses, record_id)
        answers = None
        if response.status != ResponseStatus.COMPLETED:
            answers = cache.bind(record_id, app_api.stored_answers(response))
        report = await builder.build(record_id, answers=answers)
    except SelfAssessmentError as exc:
        return _error_page(request, exc)

    frame = report_frame(report)
    return _render(
        request,
        "results.html",
        {
            "report": report,
            "completed": response.status == ResponseStatus.COMPLETED,
            "sync_status": cache.sync_status().value,
            "bar_chart": figure_json(make_results_bar_chart(frame)),
            "radar_chart": figure_json(make_results_radar(frame)),
            "export_errors": export_errors or [],
            "export_notice": export_notice,
            "export_form": export_form or {},
        },
        status_code=status_code,
    )


@router.get("/assessment/results", response_class=HTMLResponse)
async def legacy_results_redirect(
    request: Request,
    assessment_id: str | None = Query(None, alias="id"),
) -> Response:
    if not assessment_id:
        return _error_page(
            request, MissingPrerequisiteError("assessment_id", "No assessment id in the link")
        )
    return _redirect(f"/assessment/{assessment_id}/results")


@router.get("/assessment/{record_id}/results", response_class=HTMLResponse)
async def results_page(
    request: Request,
    record_id: str,
    responses=Depends(get_response_repository),
    builder: ReportBuilder = Depends(get_report_builder),
    cache: ProgressCache = Depends(get_progress_cache),
) -> HTMLResponse:
    return await _render_results(request, record_id, responses, builder, cache)


def _export_form(
    name: str,
    email: str,
    organisation_name: str,
    organisation_reg_number: str,
    wants_contact: bool,
) -> tuple[dict, ExportFormInput | None, list[str]]:
    raw = {
        "name": name,
        "email": email,
        "organisation_name": organisation_name,
        "organisation_reg_number": organisation_reg_number,
        "wants_contact": wants_contact,
    }
    validation = validate_input(ExportFormInput, raw)
    if not validation.success or validation.data is None:
        return raw, None, _form_errors(validation)
    return raw, ExportFormInput(**validation.data), []


@router.post("/assessment/{record_id}/export/pdf", response_class=HTMLResponse)
async def export_pdf(
    request: Request,
    record_id: str,
    name: str = Form(""),
    email: str = Form(""),
    organisation_name: str = Form(""),
    organisation_reg_number: str = Form(""),
    wants_contact: bool = Form(False),
    responses=Depends(get_response_repository),
    builder: ReportBuilder = Depends(get_report_builder),
    exporter=Depends(get_export_client),
    cache: ProgressCache = Depends(get_progress_cache),
) -> Response:
    raw, form, errors = _export_form(
        name, email, organisation_name, organisation_reg_number, wants_contact
    )
    if form is not None:
        try:
            content = await exporter.generate_pdf(form, record_id)
        except SelfAssessmentError as exc:
            errors = [exc.user_message]
        else:
            filename = get_settings().export.pdf_filename
            return Response(
                content=content,
                media_type="application/pdf",
                headers={"Content-Disposition": f'attachment; filename="{filename}"'},
            )
    return await _render_results(
        request,
        record_id,
        responses,
        builder,
        cache,
        export_errors=errors,
        export_form=raw,
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY if form is None else status.HTTP_502_BAD_GATEWAY,
    )


@router.post("/assessment/{record_id}/export/email", response_class=HTMLResponse)
async def export_email(
    request: Request,
    record_id: str,
    name: str = Form(""),
    email: str = Form(""),
    organisation_name: str = Form(""),
    organisation_reg_number: str = Form(""),
    wants_contact: bool = Form(False),
    responses=Depends(get_response_repository),
    builder: ReportBuilder = Depends(get_report_builder),
    exporter=Depends(get_export_client),
    cache: ProgressCache = Depends(get_progress_cache),
) -> HTMLResponse:
    raw, form, errors = _export_form(
        name, email, organisation_name, organisation_reg_number, wants_contact
    )
    notice = None
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    if form is not None:
        try:
            await exporter.send_email(form, record_id)
        except SelfAssessmentError as exc:
            errors = [exc.user_message]
            status_code = status.HTTP_502_BAD_GATEWAY
        else:
            notice = f"Tulemused saadeti aadressile {form.email}"
            status_code = status.HTTP_200_OK
    return await _render_results(
        request,
        record_id,
        responses,
        builder,
        cache,
        export_errors=errors,
        export_notice=notice,
        export_form=raw,
        status_code=status_code,
    )
