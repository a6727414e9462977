# selfassessment/infrastructure/repositories_reference.py
from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from ..domain.flow import CategoryWithQuestions
from ..domain.models import (
    Answer,
    AssessmentResponse,
    Category,
    CompanyType,
    ExampleSolution,
    MaturityBucket,
    Question,
    Recommendation,
    SolutionProvider,
    map_company_type,
)
from ..domain.services import dedupe_questions, sort_questions
from .airtable import AirtableClient, active_formula, is_record_id
from .exceptions import MissingPrerequisiteError, RecordNotFoundError
from .logging import get_logger, log_store_operation

logger = get_logger(__name__)


class ReferenceRepository:
    """
    Read access to the static assessment tables.

    Every read returns active records only. Child tables are narrowed by
    parent ids: the parents' link arrays give the candidate child ids, the
    children are fetched by ``RECORD_ID()`` and kept only if their back-link
    points at one of the requested parents.
    """

    def __init__(self, client: AirtableClient):
        self.client = client

    async def _linked_ids(self, table: str, parent_ids: Iterable[str], link_field: str) -> list[str]:
        parents = await self.client.select_by_ids(
            table, parent_ids, fields=[link_field], active_only=False
        )
        linked: dict[str, None] = {}
        for record in parents:
            for child_id in (record.get("fields") or {}).get(link_field) or []:
                linked.setdefault(child_id, None)
        return list(linked)

    # ---------- Company types ----------

    @log_store_operation("company_types.list")
    async def list_company_types(self) -> list[CompanyType]:
        records = await self.client.select(
            CompanyType.table,
            formula=active_formula(),
            fields=["companyTypeText_et", "isActive", "MethodCategories"],
        )
        return [CompanyType.from_record(r) for r in records]

    @log_store_operation("company_types.get")
    async def get_company_type(self, company_type_id: str) -> CompanyType:
        company_type = CompanyType.from_record(
            await self.client.find(CompanyType.table, company_type_id)
        )
        if not company_type.is_active:
            raise RecordNotFoundError(CompanyType.table, company_type_id)
        return company_type

    async def resolve_company_type(self, value: str | None) -> CompanyType:
        """
        Find the company type for a record id, a form value (``startup``) or a name.

        Raises:
            MissingPrerequisiteError: If nothing was selected or nothing matches
        """
        if not value or not value.strip():
            raise MissingPrerequisiteError("company_type", "Company type not selected")
        if is_record_id(value):
            return await self.get_company_type(value)

        wanted = map_company_type(value).lower()
        for company_type in await self.list_company_types():
            if company_type.text.strip().lower() == wanted:
                return company_type
        raise MissingPrerequisiteError("company_type", f"Unknown company type: {value}")

    # ---------- Categories / questions / answers ----------

    @log_store_operation("categories.list")
    async def list_categories(self, company_type_id: str) -> list[Category]:
        company_type = await self.get_company_type(company_type_id)
        if not company_type.category_ids:
            logger.info(f"No categories linked to company type {company_type_id}")
            return []
        records = await self.client.select_by_ids(Category.table, company_type.category_ids)
        return [Category.from_record(r) for r in records]

    @log_store_operation("questions.list")
    async def list_questions(
        self, category_ids: Sequence[str], sort_by_id: bool = False
    ) -> list[Question]:
        question_ids = await self._linked_ids(Category.table, category_ids, "MethodQuestions")
        return await self._questions(question_ids, category_ids, sort_by_id=sort_by_id)

    async def _questions(
        self, question_ids: Sequence[str], category_ids: Sequence[str], sort_by_id: bool = False
    ) -> list[Question]:
        wanted = set(category_ids)
        records = await self.client.select_by_ids(Question.table, question_ids)
        questions = [Question.from_record(r) for r in records]
        questions = dedupe_questions(q for q in questions if wanted & set(q.category_ids))
        return sort_questions(questions) if sort_by_id else questions

    @log_store_operation("answers.list")
    async def list_answers(self, question_ids: Sequence[str]) -> list[Answer]:
        answer_ids = await self._linked_ids(Question.table, question_ids, "MethodAnswers")
        return await self._answers(answer_ids, question_ids)

    async def _answers(self, answer_ids: Sequence[str], question_ids: Sequence[str]) -> list[Answer]:
        wanted = set(question_ids)
        records = await self.client.select_by_ids(Answer.table, answer_ids)
        answers = [Answer.from_record(r) for r in records]
        return [a for a in answers if wanted & set(a.question_ids)]

    @log_store_operation("structure.get")
    async def get_assessment_structure(self, company_type_id: str) -> list[CategoryWithQuestions]:
        """Categories of a company type with their questions and answer options."""
        categories = await self.list_categories(company_type_id)
        if not categories:
            return []

        category_ids = [c.id for c in categories]
        question_ids = list(dict.fromkeys(qid for c in categories for qid in c.question_ids))
        questions = await self._questions(question_ids, category_ids, sort_by_id=True)

        answer_ids = list(dict.fromkeys(aid for q in questions for aid in q.answer_ids))
        answers = await self._answers(answer_ids, [q.id for q in questions])

        structure: list[CategoryWithQuestions] = []
        for category in categories:
            category_questions = [q for q in questions if category.id in q.category_ids]
            structure.append(
                CategoryWithQuestions(
                    category=category,
                    questions=category_questions,
                    answers={
                        q.id: [a for a in answers if q.id in a.question_ids]
                        for q in category_questions
                    },
                )
            )
        return structure

    # ---------- Recommendations / example solutions / providers ----------

    async def _levelled(
        self,
        model: type[Recommendation] | type[ExampleSolution],
        category_id: str,
        level: MaturityBucket,
        company_type_id: str | None,
    ) -> list[Any]:
        records = await self.client.select(model.table, formula=active_formula())
        items = [model.from_record(r) for r in records]
        return [
            item
            for item in items
            if item.score_level == level and item.applies_to(category_id, company_type_id)
        ]

    @log_store_operation("recommendations.list")
    async def list_recommendations(
        self, category_id: str, level: MaturityBucket, company_type_id: str | None
    ) -> list[Recommendation]:
        return await self._levelled(Recommendation, category_id, level, company_type_id)

    @log_store_operation("example_solutions.list")
    async def list_example_solutions(
        self, category_id: str, level: MaturityBucket, company_type_id: str | None
    ) -> list[ExampleSolution]:
        return await self._levelled(ExampleSolution, category_id, level, company_type_id)

    @log_store_operation("providers.list")
    async def list_providers(self, provider_ids: Sequence[str]) -> list[SolutionProvider]:
        records = await self.client.select_by_ids(SolutionProvider.table, provider_ids)
        return [SolutionProvider.from_record(r) for r in records]

    async def list_providers_for_recommendation(self, recommendation_id: str) -> list[SolutionProvider]:
        record = Recommendation.from_record(
            await self.client.find(Recommendation.table, recommendation_id)
        )
        return await self.list_providers(record.provider_ids)

    async def list_providers_for_example_solution(self, solution_id: str) -> list[SolutionProvider]:
        record = ExampleSolution.from_record(
            await self.client.find(ExampleSolution.table, solution_id)
        )
        return await self.list_providers(record.provider_ids)


class ResponseRepository:
    """Read access to ``AssessmentResponses``; writes live in ``mutations``."""

    def __init__(self, client: AirtableClient):
        self.client = client

    @log_store_operation("responses.get")
    async def get_response(self, response_id: str) -> AssessmentResponse | None:
        try:
            record = await self.client.find(AssessmentResponse.table, response_id)
        except RecordNotFoundError:
            logger.warning(f"Assessment response {response_id} not found")
            return None
        response = AssessmentResponse.from_record(record)
        if not response.is_active:
            logger.warning(f"Assessment response {response_id} is inactive")
            return None
        return response
