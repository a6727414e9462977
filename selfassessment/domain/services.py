from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .models import Answer, Category, MaturityBucket, Question
from .schemas import (
    ContentAnswer,
    ContentCategory,
    ContentMetadata,
    ContentQuestion,
    ResponseContent,
)

RED_BELOW = 40
YELLOW_BELOW = 70


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (53.5 -> 54, 52.5 -> 53)."""
    return int(math.floor(value + 0.5))


def maturity_bucket(score: float) -> MaturityBucket:
    if score < RED_BELOW:
        return MaturityBucket.RED
    if score < YELLOW_BELOW:
        return MaturityBucket.YELLOW
    return MaturityBucket.GREEN


def average_score(scores: Iterable[float]) -> int:
    """Rounded mean, or 0 when there is nothing to average."""
    values = list(scores)
    if not values:
        return 0
    return round_half_up(sum(values) / len(values))


def dedupe_questions(questions: Iterable[Question]) -> list[Question]:
    """Drop repeated question ids, keeping the first occurrence."""
    seen: set[str] = set()
    unique: list[Question] = []
    for question in questions:
        if question.id in seen:
            continue
        seen.add(question.id)
        unique.append(question)
    return unique


def sort_questions(questions: Iterable[Question]) -> list[Question]:
    """Order by the numeric suffix of the display id; unnumbered questions go last."""
    return sorted(
        questions,
        key=lambda q: (q.sort_number is None, q.sort_number or 0),
    )


@dataclass
class AnsweredQuestion:
    question: Question
    answer: Answer


@dataclass
class CategoryScore:
    category: Category
    score: int
    bucket: MaturityBucket
    question_count: int
    answered: list[AnsweredQuestion] = field(default_factory=list)

    @property
    def answered_count(self) -> int:
        return len(self.answered)

    @property
    def maturity_level(self) -> str:
        return self.bucket.label


def _chosen_answer_id(chosen: Mapping[str, str], question: Question) -> str | None:
    return chosen.get(question.id) or chosen.get(question.display_id)


def score_categories(
    categories: Sequence[Category],
    questions: Iterable[Question],
    answers: Iterable[Answer],
    chosen: Mapping[str, str],
) -> list[CategoryScore]:
    """
    Score every category from the user's questionId -> answerId choices.

    Unanswered questions and unknown answer ids are skipped. A category with no
    resolved answers scores 0 (red).
    """
    answers_by_id = {answer.id: answer for answer in answers}
    unique_questions = dedupe_questions(questions)

    results: list[CategoryScore] = []
    for category in categories:
        category_questions = [q for q in unique_questions if category.id in q.category_ids]
        answered: list[AnsweredQuestion] = []
        for question in category_questions:
            answer_id = _chosen_answer_id(chosen, question)
            if not answer_id:
                continue
            answer = answers_by_id.get(answer_id)
            if answer is None:
                continue
            answered.append(AnsweredQuestion(question=question, answer=answer))

        score = average_score(item.answer.score for item in answered)
        results.append(
            CategoryScore(
                category=category,
                score=score,
                bucket=maturity_bucket(score),
                question_count=len(category_questions),
                answered=answered,
            )
        )
    return results


def overall_score(category_scores: Sequence[CategoryScore]) -> int:
    """Unweighted mean of the category scores."""
    return average_score(c.score for c in category_scores)


def build_response_content(
    category_scores: Sequence[CategoryScore],
    company_type: str,
    goal: str,
    submitted_at: datetime | None = None,
) -> ResponseContent:
    """Assemble the document persisted when an assessment is completed."""
    return ResponseContent(
        metadata=ContentMetadata(
            submitted_at=submitted_at or datetime.now(timezone.utc),
            company_type=company_type,
            goal=goal,
            overall_score=overall_score(category_scores),
        ),
        categories=[
            ContentCategory(
                category_id=cs.category.id,
                score=cs.score,
                questions=[
                    ContentQuestion(
                        question_id=item.question.id,
                        answer=ContentAnswer(
                            answer_id=item.answer.id,
                            answer_score=item.answer.score,
                        ),
                    )
                    for item in cs.answered
                ],
            )
            for cs in category_scores
        ],
    )
