"""
Pydantic schemas for input validation and for the persisted response document.

Input schemas validate what users type into the setup, company details and
export forms. The ``ResponseContent`` family describes the JSON document stored
in ``AssessmentResponses.responseContent``.
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from html import unescape
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

CONTENT_VERSION = "1.0"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class BaseValidationSchema(BaseModel):
    """Base schema with common validation utilities."""

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    @field_validator("*", mode="before")
    def sanitize_strings(cls, v):
        """Strip markup and control characters from free-text inputs."""
        if isinstance(v, str):
            cleaned = unescape(v.strip())
            cleaned = re.sub(
                r"<\s*script[^>]*>.*?<\s*/\s*script\s*>",
                "",
                cleaned,
                flags=re.IGNORECASE | re.DOTALL,
            )
            cleaned = re.sub(r"<[^>]+>", "", cleaned)
            cleaned = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]", "", cleaned)
            return cleaned
        return v


class AssessmentSetupInput(BaseValidationSchema):
    """First step: which kind of company is assessed and what it wants to achieve."""

    company_type: str = Field(..., min_length=1, max_length=64)
    initial_goal: str = Field(..., min_length=1, max_length=2000)

    @field_validator("initial_goal")
    def validate_goal(cls, v):
        if not v.strip():
            raise ValueError("Initial goal cannot be empty")
        return v


class CompanyDetailsInput(BaseValidationSchema):
    contact_name: str = Field(..., min_length=1, max_length=255)
    contact_email: str = Field(..., min_length=3, max_length=255)
    company_name: str = Field(..., min_length=1, max_length=255)
    # Confirms the type chosen at setup; it is never rewritten here.
    company_type: str | None = Field(None, max_length=64)

    @field_validator("contact_email")
    def validate_email(cls, v):
        if not _EMAIL_RE.match(v):
            raise ValueError("Email address is not valid")
        return v.lower()


class ExportFormInput(BaseValidationSchema):
    """Contact form shown next to the PDF download and email buttons."""

    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255)
    organisation_name: str | None = Field(None, max_length=255)
    organisation_reg_number: str | None = Field(None, max_length=64)
    wants_contact: bool = False

    @field_validator("email")
    def validate_email(cls, v):
        if not _EMAIL_RE.match(v):
            raise ValueError("Email address is not valid")
        return v

    @field_validator("organisation_name", "organisation_reg_number")
    def empty_to_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v

    def to_payload(self, assessment_id: str) -> dict[str, Any]:
        """Body expected by the export services."""
        return {
            "assessmentId": assessment_id,
            "name": self.name,
            "email": self.email,
            "organisationName": self.organisation_name or "",
            "organisationRegNumber": self.organisation_reg_number or "",
            "wantsContact": self.wants_contact,
        }


# ---------- Persisted response content ----------


class _ContentModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ContentAnswer(_ContentModel):
    answer_id: str = Field(..., alias="answerId")
    answer_score: float = Field(..., alias="answerScore")


class ContentQuestion(_ContentModel):
    question_id: str = Field(..., alias="questionId")
    answer: ContentAnswer


class ContentCategory(_ContentModel):
    category_id: str = Field(..., alias="categoryId")
    score: int
    questions: list[ContentQuestion] = Field(default_factory=list)


class ContentMetadata(_ContentModel):
    submitted_at: datetime = Field(..., alias="submittedAt")
    company_type: str = Field(..., alias="companyType")
    goal: str = ""
    overall_score: int = Field(..., alias="overallScore")


class ResponseContent(_ContentModel):
    """Final assessment document written when a response is completed."""

    metadata: ContentMetadata
    categories: list[ContentCategory] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    def answer_map(self) -> dict[str, str]:
        """Flatten back to the questionId -> answerId map."""
        out: dict[str, str] = {}
        for category in self.categories:
            for question in category.questions:
                out.setdefault(question.question_id, question.answer.answer_id)
        return out


class ProgressContent(_ContentModel):
    """In-progress document: the raw answer map."""

    answers: dict[str, str] = Field(default_factory=dict)
    version: str = CONTENT_VERSION
    company_type: str | None = Field(None, alias="companyType")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


def parse_response_content(raw: str | None) -> ResponseContent | ProgressContent:
    """
    Parse ``responseContent`` written by any code path.

    Accepts the final document, the in-progress ``{answers, version}`` shape and
    the older ``{companyType, responses: [{questionId, answerId}]}`` shape.

    Raises:
        ValueError: If the text is not JSON or matches none of the shapes
    """
    if not raw or not raw.strip():
        return ProgressContent()

    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Response content must be a JSON object")

    if "metadata" in data and "categories" in data:
        return ResponseContent.model_validate(data)

    if "responses" in data:
        answers = {
            str(item["questionId"]): str(item["answerId"])
            for item in data.get("responses") or []
            if isinstance(item, dict) and item.get("questionId") and item.get("answerId")
        }
        return ProgressContent(answers=answers, company_type=data.get("companyType"))

    return ProgressContent.model_validate(data)


def extract_answers(raw: str | None) -> dict[str, str]:
    """questionId -> answerId map from any content shape."""
    content = parse_response_content(raw)
    if isinstance(content, ResponseContent):
        return content.answer_map()
    return dict(content.answers)


class ValidationErrorDetail(BaseModel):
    field: str
    message: str
    value: Any = None


class ValidationResponse(BaseModel):
    success: bool
    errors: list[ValidationErrorDetail] = []
    data: dict[str, Any] | None = None


def validate_input(schema_class: type[BaseModel], data: dict[str, Any]) -> ValidationResponse:
    """
    Centralized validation function that returns structured validation results.

    Example:
        >>> result = validate_input(AssessmentSetupInput, {"company_type": "startup"})
        >>> result.success
        False
    """
    try:
        validated = schema_class(**data)
        return ValidationResponse(success=True, data=validated.model_dump())
    except Exception as e:
        errors = []
        if hasattr(e, "errors"):
            for error in e.errors():
                errors.append(
                    ValidationErrorDetail(
                        field=".".join(str(x) for x in error["loc"]) or "general",
                        message=error["msg"],
                        value=error.get("input"),
                    )
                )
        else:
            errors.append(ValidationErrorDetail(field="general", message=str(e)))

        return ValidationResponse(success=False, errors=errors)
