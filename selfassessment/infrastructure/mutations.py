"""
Write operations on ``AssessmentResponses``.

Every mutation returns a ``MutationResult`` instead of raising: callers must
check ``success``. Status changes are validated against the transition table
before anything is written, so an invalid transition never reaches the store.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from ..domain.models import AssessmentResponse, ResponseStatus, validate_transition
from ..domain.schemas import (
    AssessmentSetupInput,
    CompanyDetailsInput,
    ProgressContent,
    ResponseContent,
    extract_answers,
    validate_input,
)
from .airtable import AirtableClient, is_record_id
from .exceptions import (
    InvalidTransitionError,
    RecordNotFoundError,
    SelfAssessmentError,
    ValidationError,
    log_error_details,
)
from .logging import get_logger, log_operation

logger = get_logger(__name__)

TABLE = AssessmentResponse.table


class MutationResult(BaseModel):
    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None
    error_type: str | None = None


def _failure(action: str, error: Exception) -> MutationResult:
    details = log_error_details(error, {"action": action})
    logger.error(f"Failed to {action}", extra=details)
    message = error.message if isinstance(error, SelfAssessmentError) else str(error)
    return MutationResult(
        success=False,
        error=f"Failed to {action}: {message or 'Unknown error'}",
        error_type=type(error).__name__,
    )


def _validation_failure(action: str, result) -> MutationResult:
    message = "; ".join(f"{e.field}: {e.message}" for e in result.errors)
    logger.warning(f"{action} validation failed: {message}")
    return MutationResult(
        success=False, error=f"Failed to {action}: {message}", error_type="ValidationError"
    )


async def _load(client: AirtableClient, record_id: str) -> AssessmentResponse:
    if not record_id:
        raise ValidationError("record_id", "Cannot update a response without a record id")
    response = AssessmentResponse.from_record(await client.find(TABLE, record_id))
    if not response.is_active:
        raise RecordNotFoundError(TABLE, record_id)
    return response


@log_operation("create_response")
async def create_response(
    client: AirtableClient, initial_goal: str, company_type: str
) -> MutationResult:
    """
    Create a new response in status New with an empty answer map.

    Returns ``data = {"record_id", "response_id"}`` on success.
    """
    action = "create response"
    validation = validate_input(
        AssessmentSetupInput, {"initial_goal": initial_goal, "company_type": company_type}
    )
    if not validation.success or validation.data is None:
        return _validation_failure(action, validation)
    if not is_record_id(validation.data["company_type"]):
        return _failure(
            action, ValidationError("company_type", "Company type must be a record id", company_type)
        )

    try:
        record = await client.create(
            TABLE,
            {
                "initialGoal": validation.data["initial_goal"],
                "responseStatus": ResponseStatus.NEW.value,
                "isActive": True,
                "MethodCompanyTypes": [validation.data["company_type"]],
                "responseContent": ProgressContent(
                    company_type=validation.data["company_type"]
                ).to_json(),
            },
        )
        response = AssessmentResponse.from_record(record)
    except Exception as e:
        return _failure(action, e)

    logger.info(f"Created assessment response {response.id}")
    return MutationResult(
        success=True,
        data={"record_id": response.id, "response_id": response.response_id or response.id},
    )


@log_operation("update_company_details")
async def update_company_details(
    client: AirtableClient, record_id: str, details: Mapping[str, Any]
) -> MutationResult:
    """
    Store contact and company fields and move the response New -> In Progress.

    The company type link set at creation is left untouched. A ``company_type``
    in ``details`` must be the record id already linked to the response.
    """
    action = "update company details"
    validation = validate_input(CompanyDetailsInput, dict(details))
    if not validation.success or validation.data is None:
        return _validation_failure(action, validation)
    data = validation.data
    company_type = data.get("company_type")
    if company_type is not None and not is_record_id(company_type):
        return _failure(
            action, ValidationError("company_type", "Company type must be a record id", company_type)
        )

    try:
        response = await _load(client, record_id)
        if company_type is not None and company_type != response.company_type_id:
            raise ValidationError(
                "company_type", "Company type cannot change after setup", company_type
            )
        validate_transition(response.status, ResponseStatus.IN_PROGRESS)
        await client.update(
            TABLE,
            record_id,
            {
                "contactName": data["contact_name"],
                "contactEmail": data["contact_email"],
                "companyName": data["company_name"],
                "responseStatus": ResponseStatus.IN_PROGRESS.value,
            },
        )
    except Exception as e:
        return _failure(action, e)

    return MutationResult(success=True)


@log_operation("update_response_status")
async def update_response_status(
    client: AirtableClient, record_id: str, new_status: ResponseStatus | str
) -> MutationResult:
    action = "update response status"
    try:
        status = ResponseStatus.parse(new_status)
        response = await _load(client, record_id)
        validate_transition(response.status, status)
        await client.update(TABLE, record_id, {"responseStatus": status.value})
    except Exception as e:
        return _failure(action, e)

    return MutationResult(success=True, data={"status": status.value})


@log_operation("save_progress")
async def save_progress(
    client: AirtableClient, record_id: str, answers: Mapping[str, str]
) -> MutationResult:
    """
    Write the in-progress answer map into ``responseContent``.

    Sending a map that is already stored writes nothing. A completed response
    is never modified.
    """
    action = "save progress"
    try:
        response = await _load(client, record_id)
        if response.status == ResponseStatus.COMPLETED:
            raise InvalidTransitionError(response.status.value, ResponseStatus.IN_PROGRESS.value)

        try:
            stored = extract_answers(response.response_content)
        except ValueError:
            logger.warning(f"Unreadable content on response {record_id}; overwriting")
            stored = {}

        if stored == dict(answers):
            return MutationResult(success=True, data={"changed": False})

        content = ProgressContent(answers=dict(answers), company_type=response.company_type_id)
        await client.update(TABLE, record_id, {"responseContent": content.to_json()})
    except Exception as e:
        return _failure(action, e)

    return MutationResult(success=True, data={"changed": True})


@log_operation("update_assessment_results")
async def update_assessment_results(
    client: AirtableClient, record_id: str, content: ResponseContent
) -> MutationResult:
    """Persist the final scored document and move the response In Progress -> Completed."""
    action = "update assessment results"
    try:
        response = await _load(client, record_id)
        validate_transition(response.status, ResponseStatus.COMPLETED)
        record = await client.update(
            TABLE,
            record_id,
            {
                "responseContent": content.to_json(),
                "responseStatus": ResponseStatus.COMPLETED.value,
            },
        )
    except Exception as e:
        return _failure(action, e)

    fields = record.get("fields") or {}
    return MutationResult(
        success=True,
        data={
            "id": record.get("id", record_id),
            "responseContent": fields.get("responseContent"),
            "responseStatus": fields.get("responseStatus"),
        },
    )
