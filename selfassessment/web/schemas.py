from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from selfassessment.application.progress import SyncStatus


class CompanyTypeOut(BaseModel):
    id: str
    text: str


class AssessmentCreateRequest(BaseModel):
    company_type: str = Field(..., description="Record id, form value (startup/sme/enterprise) or name")
    initial_goal: str


class AssessmentCreateResponse(BaseModel):
    record_id: str
    response_id: str
    company_type: CompanyTypeOut


class CompanyDetailsRequest(BaseModel):
    contact_name: str
    contact_email: str
    company_name: str
    company_type: Optional[str] = None


class MutationResponse(BaseModel):
    success: bool
    data: Optional[dict[str, Any]] = None
    error: Optional[str] = None


class AnswerOption(BaseModel):
    id: str
    text: str
    description: Optional[str] = None
    score: float


class StructureQuestion(BaseModel):
    id: str
    question_id: str
    text: str
    answers: list[AnswerOption]


class StructureCategory(BaseModel):
    id: str
    text: str
    description: Optional[str] = None
    questions: list[StructureQuestion]


class CategoryProgressOut(BaseModel):
    category_id: str
    total: int
    answered: int
    progress: float


class ProgressResponse(BaseModel):
    record_id: str
    answers: dict[str, str]
    sync_status: SyncStatus
    progress: float
    categories: list[CategoryProgressOut] = Field(default_factory=list)


class ProgressUpdateRequest(BaseModel):
    answers: dict[str, str]


class CompleteRequest(BaseModel):
    answers: Optional[dict[str, str]] = None


class ExportRequest(BaseModel):
    name: str
    email: str
    organisation_name: Optional[str] = None
    organisation_reg_number: Optional[str] = None
    wants_contact: bool = False


class ExportResponse(BaseModel):
    status: str
    message: str
