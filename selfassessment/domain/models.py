from __future__ import annotations

import re
from enum import Enum
from typing import Any, ClassVar, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..infrastructure.exceptions import InvalidTransitionError, MalformedRecordError


class ResponseStatus(str, Enum):
    NEW = "New"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"

    @classmethod
    def parse(cls, value: Any) -> ResponseStatus:
        """Accept the stored labels as well as ``InProgress``/``in_progress`` spellings."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = re.sub(r"[\s_-]+", "", value).lower()
            for member in cls:
                if member.value.replace(" ", "").lower() == key:
                    return member
        raise ValueError(f"Unknown response status: {value!r}")


STATUS_TRANSITIONS: dict[ResponseStatus, tuple[ResponseStatus, ...]] = {
    ResponseStatus.NEW: (ResponseStatus.IN_PROGRESS,),
    ResponseStatus.IN_PROGRESS: (ResponseStatus.COMPLETED,),
    ResponseStatus.COMPLETED: (),
}


def is_valid_transition(current: ResponseStatus | str, new: ResponseStatus | str) -> bool:
    try:
        current_status = ResponseStatus.parse(current)
        new_status = ResponseStatus.parse(new)
    except ValueError:
        return False
    return new_status in STATUS_TRANSITIONS[current_status]


def validate_transition(current: ResponseStatus | str | None, new: ResponseStatus | str) -> None:
    """Raise ``InvalidTransitionError`` unless ``current -> new`` is in the transition table."""
    if current is None or not is_valid_transition(current, new):
        current_label = current.value if isinstance(current, ResponseStatus) else current
        new_label = new.value if isinstance(new, ResponseStatus) else new
        raise InvalidTransitionError(current_label, new_label)


# Form values -> company type names used in the record store.
COMPANY_TYPE_MAPPING: dict[str, str] = {
    "startup": "Startup",
    "sme": "SME",
    "enterprise": "Enterprise",
}


def map_company_type(value: str) -> str:
    """``startup`` -> ``Startup``; unknown values pass through unchanged."""
    return COMPANY_TYPE_MAPPING.get(value.strip().lower(), value.strip())


class MaturityBucket(str, Enum):
    RED = "red"
    YELLOW = "yellow"
    GREEN = "green"

    @property
    def label(self) -> str:
        return _BUCKET_LABELS[self]

    @classmethod
    def parse(cls, value: Any) -> MaturityBucket:
        """Accept ``red``/``Red`` as well as the Estonian labels stored in some tables."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            for member in cls:
                if key in (member.value, member.label.lower()):
                    return member
        raise ValueError(f"Unknown maturity level: {value!r}")


_BUCKET_LABELS = {
    MaturityBucket.RED: "Punane",
    MaturityBucket.YELLOW: "Kollane",
    MaturityBucket.GREEN: "Roheline",
}


# ---------- Record schemas ----------
#
# Airtable omits empty fields and unchecked checkboxes from the payload, so
# flags default to False and link arrays to [].


class AirtableRecord(BaseModel):
    """Base schema for a record read from one Airtable table."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    table: ClassVar[str]

    id: str = Field(..., min_length=1)
    is_active: bool = Field(False, alias="isActive")

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Self:
        """Validate a raw ``{"id", "fields"}`` payload, rejecting malformed records."""
        record_id = record.get("id") if isinstance(record, dict) else None
        fields = record.get("fields") if isinstance(record, dict) else None
        if not isinstance(fields, dict):
            raise MalformedRecordError(cls.table, record_id, ["fields: missing or not an object"])
        try:
            return cls.model_validate({**fields, "id": record_id})
        except PydanticValidationError as e:
            problems = [
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
            ]
            raise MalformedRecordError(cls.table, record_id, problems) from e


class CompanyType(AirtableRecord):
    table: ClassVar[str] = "MethodCompanyTypes"

    text: str = Field(..., alias="companyTypeText_et", min_length=1)
    category_ids: list[str] = Field(default_factory=list, alias="MethodCategories")


class Category(AirtableRecord):
    table: ClassVar[str] = "MethodCategories"

    text: str = Field(..., alias="categoryText_et", min_length=1)
    description: str | None = Field(None, alias="categoryDescription_et")
    company_type_ids: list[str] = Field(default_factory=list, alias="MethodCompanyTypes")
    question_ids: list[str] = Field(default_factory=list, alias="MethodQuestions")


_NUMERIC_SUFFIX = re.compile(r"(\d+)$")


class Question(AirtableRecord):
    table: ClassVar[str] = "MethodQuestions"

    question_id: str | None = Field(None, alias="questionId")
    text: str = Field(..., alias="questionText_et", min_length=1)
    category_ids: list[str] = Field(..., alias="MethodCategories", min_length=1)
    answer_ids: list[str] = Field(default_factory=list, alias="MethodAnswers")

    @property
    def display_id(self) -> str:
        return self.question_id or self.id

    @property
    def sort_number(self) -> int | None:
        """Numeric suffix of the display id (``Q12`` -> 12), if any."""
        match = _NUMERIC_SUFFIX.search(self.display_id)
        return int(match.group(1)) if match else None


class Answer(AirtableRecord):
    table: ClassVar[str] = "MethodAnswers"

    text: str = Field(..., alias="answerText_et", min_length=1)
    description: str | None = Field(None, alias="answerDescription_et")
    score: float = Field(..., alias="answerScore")
    question_ids: list[str] = Field(default_factory=list, alias="MethodQuestions")


class SolutionProvider(AirtableRecord):
    table: ClassVar[str] = "SolutionProviders"

    name: str = Field(..., alias="providerName_et", min_length=1)
    description: str | None = Field(None, alias="providerDescription_et")
    url: str | None = Field(None, alias="providerUrl")
    logo: str | None = Field(None, alias="providerLogo")


class _LevelledAdvice(AirtableRecord):
    score_level: MaturityBucket = Field(..., alias="scoreLevel")
    category_ids: list[str] = Field(default_factory=list, alias="MethodCategories")
    company_type_ids: list[str] = Field(default_factory=list, alias="MethodCompanyTypes")
    provider_ids: list[str] = Field(default_factory=list, alias="SolutionProviders")

    @field_validator("score_level", mode="before")
    def parse_score_level(cls, v):
        return MaturityBucket.parse(v)

    def applies_to(self, category_id: str, company_type_id: str | None) -> bool:
        """Linked to the category, and to the company type unless it is unrestricted."""
        if category_id not in self.category_ids:
            return False
        if company_type_id and self.company_type_ids:
            return company_type_id in self.company_type_ids
        return True


class Recommendation(_LevelledAdvice):
    table: ClassVar[str] = "MethodRecommendations"

    text: str = Field(..., alias="recommendationText_et", min_length=1)
    description: str | None = Field(None, alias="recommendationDescription_et")


class ExampleSolution(_LevelledAdvice):
    table: ClassVar[str] = "MethodExampleSolutions"

    text: str = Field(..., alias="exampleSolutionText_et", min_length=1)
    description: str | None = Field(None, alias="exampleSolutionDescription_et")


class AssessmentResponse(AirtableRecord):
    table: ClassVar[str] = "AssessmentResponses"

    response_id: str | None = Field(None, alias="responseId")
    company_name: str | None = Field(None, alias="companyName")
    contact_name: str | None = Field(None, alias="contactName")
    contact_email: str | None = Field(None, alias="contactEmail")
    initial_goal: str = Field(..., alias="initialGoal")
    response_content: str = Field("", alias="responseContent")
    status: ResponseStatus = Field(ResponseStatus.NEW, alias="responseStatus")
    company_type_ids: list[str] = Field(default_factory=list, alias="MethodCompanyTypes")

    @field_validator("status", mode="before")
    def parse_status(cls, v):
        if v is None:
            return ResponseStatus.NEW
        return ResponseStatus.parse(v)

    @property
    def company_type_id(self) -> str | None:
        return self.company_type_ids[0] if self.company_type_ids else None
