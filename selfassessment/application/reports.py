"""
Results report assembly.

A report is built from one assessment response: the chosen answers are scored
per category, and each category is enriched with the recommendations and
example solutions for its maturity bucket, each with its solution providers.
Enrichment is best effort: a failed lookup leaves an empty list for that item
only and never fails the whole report.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar

from ..domain.models import (
    AssessmentResponse,
    Category,
    CompanyType,
    ExampleSolution,
    MaturityBucket,
    Recommendation,
    ResponseStatus,
    SolutionProvider,
)
from ..domain.schemas import ProgressContent, ResponseContent, parse_response_content
from ..domain.services import (
    AnsweredQuestion,
    CategoryScore,
    maturity_bucket,
    overall_score,
    score_categories,
)
from ..infrastructure.exceptions import (
    MalformedRecordError,
    MissingPrerequisiteError,
    RecordNotFoundError,
    SelfAssessmentError,
)
from ..infrastructure.logging import get_logger, log_operation
from ..infrastructure.repositories_reference import ReferenceRepository, ResponseRepository

logger = get_logger(__name__)

R = TypeVar("R")


@dataclass
class AdviceItem:
    """A recommendation or example solution with its providers."""

    id: str
    text: str
    description: str | None = None
    providers: list[SolutionProvider] = field(default_factory=list)


@dataclass
class CategoryReport:
    category: Category
    score: int
    bucket: MaturityBucket
    question_count: int
    answered: list[AnsweredQuestion] = field(default_factory=list)
    recommendations: list[AdviceItem] = field(default_factory=list)
    example_solutions: list[AdviceItem] = field(default_factory=list)

    @property
    def maturity_level(self) -> str:
        return self.bucket.label


@dataclass
class AssessmentReport:
    response: AssessmentResponse
    company_type: CompanyType
    categories: list[CategoryReport]
    overall_score: int
    overall_bucket: MaturityBucket
    submitted_at: datetime | None = None

    @property
    def goal(self) -> str:
        return self.response.initial_goal

    def to_dict(self) -> dict[str, Any]:
        def advice(item: AdviceItem) -> dict[str, Any]:
            return {
                "id": item.id,
                "text": item.text,
                "description": item.description,
                "providers": [
                    {"id": p.id, "name": p.name, "description": p.description, "url": p.url, "logo": p.logo}
                    for p in item.providers
                ],
            }

        return {
            "responseId": self.response.response_id or self.response.id,
            "recordId": self.response.id,
            "status": self.response.status.value,
            "companyName": self.response.company_name,
            "companyType": {"id": self.company_type.id, "text": self.company_type.text},
            "goal": self.goal,
            "submittedAt": self.submitted_at.isoformat() if self.submitted_at else None,
            "overallScore": self.overall_score,
            "overallLevel": self.overall_bucket.value,
            "overallLabel": self.overall_bucket.label,
            "categories": [
                {
                    "categoryId": c.category.id,
                    "text": c.category.text,
                    "description": c.category.description,
                    "score": c.score,
                    "level": c.bucket.value,
                    "label": c.maturity_level,
                    "questionCount": c.question_count,
                    "answered": [
                        {
                            "questionId": a.question.id,
                            "question": a.question.text,
                            "answerId": a.answer.id,
                            "answer": a.answer.text,
                            "answerScore": a.answer.score,
                        }
                        for a in c.answered
                    ],
                    "recommendations": [advice(r) for r in c.recommendations],
                    "exampleSolutions": [advice(s) for s in c.example_solutions],
                }
                for c in self.categories
            ],
        }


def with_answers(response: AssessmentResponse, answers: Mapping[str, str]) -> AssessmentResponse:
    """Copy of ``response`` whose content is the in-progress map ``answers``."""
    content = ProgressContent(answers=dict(answers), company_type=response.company_type_id)
    return response.model_copy(update={"response_content": content.to_json()})


async def _or_empty(awaitable: Awaitable[list[R]], what: str) -> list[R]:
    try:
        return await awaitable
    except SelfAssessmentError as e:
        logger.warning(f"Could not load {what}, showing none: {e.message}")
        return []


class ReportBuilder:
    def __init__(self, reference: ReferenceRepository, responses: ResponseRepository):
        self.reference = reference
        self.responses = responses

    async def _advice_item(self, item: Recommendation | ExampleSolution) -> AdviceItem:
        providers: list[SolutionProvider] = []
        if item.provider_ids:
            providers = await _or_empty(
                self.reference.list_providers(item.provider_ids), f"providers of {item.id}"
            )
        return AdviceItem(
            id=item.id, text=item.text, description=item.description, providers=providers
        )

    async def _category_report(
        self, category_score: CategoryScore, company_type_id: str
    ) -> CategoryReport:
        category_id = category_score.category.id
        recommendations, solutions = await asyncio.gather(
            _or_empty(
                self.reference.list_recommendations(
                    category_id, category_score.bucket, company_type_id
                ),
                f"recommendations for {category_id}",
            ),
            _or_empty(
                self.reference.list_example_solutions(
                    category_id, category_score.bucket, company_type_id
                ),
                f"example solutions for {category_id}",
            ),
        )
        items = await asyncio.gather(
            *(self._advice_item(item) for item in [*recommendations, *solutions])
        )
        return CategoryReport(
            category=category_score.category,
            score=category_score.score,
            bucket=category_score.bucket,
            question_count=category_score.question_count,
            answered=category_score.answered,
            recommendations=list(items[: len(recommendations)]),
            example_solutions=list(items[len(recommendations) :]),
        )

    async def score(
        self, response: AssessmentResponse
    ) -> tuple[CompanyType, list[CategoryScore], ResponseContent | None]:
        """Category scores for the answers stored on ``response``."""
        try:
            content = parse_response_content(response.response_content)
        except ValueError as e:
            raise MalformedRecordError(
                AssessmentResponse.table, response.id, [f"responseContent: {str(e)}"]
            ) from e

        if isinstance(content, ResponseContent):
            final = content
            chosen = content.answer_map()
            stored_type = content.metadata.company_type
        else:
            final = None
            chosen = dict(content.answers)
            stored_type = content.company_type

        company_type_id = response.company_type_id or stored_type
        if not company_type_id:
            raise MissingPrerequisiteError("company_type", "Response has no company type")

        company_type = await self.reference.resolve_company_type(company_type_id)
        structure = await self.reference.get_assessment_structure(company_type.id)

        scores = score_categories(
            [block.category for block in structure],
            [q for block in structure for q in block.questions],
            [a for block in structure for answers in block.answers.values() for a in answers],
            chosen,
        )
        return company_type, scores, final

    @log_operation("build_report")
    async def build(
        self, response_id: str, answers: Mapping[str, str] | None = None
    ) -> AssessmentReport:
        """
        Score a response and attach advice to every category.

        ``answers`` replaces the stored choices of a response that is not yet
        completed, so a report can show answers whose sync did not go through.

        Raises:
            RecordNotFoundError: If the response does not exist
            MissingPrerequisiteError: If the response has no company type
            MalformedRecordError: If the stored content cannot be parsed
        """
        response = await self.responses.get_response(response_id)
        if response is None:
            raise RecordNotFoundError(AssessmentResponse.table, response_id)
        if answers and response.status != ResponseStatus.COMPLETED:
            response = with_answers(response, answers)

        company_type, scores, final = await self.score(response)
        categories = await asyncio.gather(
            *(self._category_report(cs, company_type.id) for cs in scores)
        )

        total = overall_score(scores)
        logger.info(f"Built report for {response_id}: {len(categories)} categories, score {total}")
        return AssessmentReport(
            response=response,
            company_type=company_type,
            categories=list(categories),
            overall_score=total,
            overall_bucket=maturity_bucket(total),
            submitted_at=final.metadata.submitted_at if final else None,
        )

