"""
Question flow for the assessment step.

The flow walks a flattened, de-duplicated, id-sorted list of questions. Moving
forward from the last question finalizes the assessment, which is only allowed
once that question has an answer.
"""

from __future__ import annotations

import random
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum

from ..infrastructure.exceptions import ValidationError
from .models import Answer, Category, Question
from .services import sort_questions


@dataclass
class CategoryWithQuestions:
    category: Category
    questions: list[Question]
    answers: dict[str, list[Answer]] = field(default_factory=dict)


@dataclass(frozen=True)
class FlowItem:
    category_id: str
    question: Question
    answers: tuple[Answer, ...]

    @property
    def question_id(self) -> str:
        return self.question.id


@dataclass(frozen=True)
class CategoryProgress:
    category_id: str
    total: int
    answered: int

    @property
    def progress(self) -> float:
        return (self.answered / self.total) * 100 if self.total else 0.0


class FlowAction(str, Enum):
    MOVED = "moved"
    STAYED = "stayed"
    FINALIZE = "finalize"
    BLOCKED = "blocked"


def flatten_structure(structure: Sequence[CategoryWithQuestions]) -> list[FlowItem]:
    """One item per question; a question listed under several categories keeps its first."""
    items: list[FlowItem] = []
    seen: set[str] = set()
    for block in structure:
        for question in block.questions:
            if question.id in seen:
                continue
            seen.add(question.id)
            items.append(
                FlowItem(
                    category_id=block.category.id,
                    question=question,
                    answers=tuple(block.answers.get(question.id, [])),
                )
            )

    order = {q.id: pos for pos, q in enumerate(sort_questions(i.question for i in items))}
    items.sort(key=lambda item: order[item.question.id])
    return items


class QuestionFlow:
    def __init__(
        self,
        items: Sequence[FlowItem],
        answers: Mapping[str, str] | None = None,
        index: int = 0,
    ):
        self.items: tuple[FlowItem, ...] = tuple(items)
        self.answers: dict[str, str] = dict(answers or {})
        self.index = self._clamp(index)

    def _clamp(self, index: int) -> int:
        if not self.items:
            return 0
        return max(0, min(index, len(self.items) - 1))

    # ---------- State ----------

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def current(self) -> FlowItem | None:
        return self.items[self.index] if self.items else None

    @property
    def is_first(self) -> bool:
        return self.index == 0

    @property
    def is_last(self) -> bool:
        return bool(self.items) and self.index == len(self.items) - 1

    @property
    def selected_answer(self) -> str | None:
        item = self.current
        return self.answers.get(item.question_id) if item else None

    def is_complete(self) -> bool:
        return bool(self.items) and all(i.question_id in self.answers for i in self.items)

    # ---------- Transitions ----------

    def go_to(self, index: int) -> None:
        self.index = self._clamp(index)

    def next(self) -> FlowAction:
        if not self.items:
            return FlowAction.STAYED
        if not self.is_last:
            self.index += 1
            return FlowAction.MOVED
        return FlowAction.FINALIZE if self.selected_answer else FlowAction.BLOCKED

    def previous(self) -> FlowAction:
        if self.index > 0:
            self.index -= 1
            return FlowAction.MOVED
        return FlowAction.STAYED

    def select(self, answer_id: str) -> FlowAction:
        """Record an answer for the current question, then advance or finalize."""
        item = self.current
        if item is None:
            raise ValidationError("question", "There is no question to answer")
        if item.answers and answer_id not in {a.id for a in item.answers}:
            raise ValidationError("answer_id", "Answer does not belong to this question", answer_id)

        self.answers = {**self.answers, item.question_id: answer_id}
        if not self.is_last:
            self.index += 1
            return FlowAction.MOVED
        return FlowAction.FINALIZE

    # ---------- Progress ----------

    def progress_percentage(self) -> float:
        if not self.items:
            return 0.0
        answered = sum(1 for i in self.items if i.question_id in self.answers)
        return (answered / len(self.items)) * 100

    def category_progress(self, category_id: str) -> CategoryProgress:
        in_category = [i for i in self.items if i.category_id == category_id]
        answered = sum(1 for i in in_category if i.question_id in self.answers)
        return CategoryProgress(category_id=category_id, total=len(in_category), answered=answered)

    def categories_progress(self) -> list[CategoryProgress]:
        ordered: list[str] = []
        for item in self.items:
            if item.category_id not in ordered:
                ordered.append(item.category_id)
        return [self.category_progress(cid) for cid in ordered]

    def first_unanswered_index(self) -> int:
        for pos, item in enumerate(self.items):
            if item.question_id not in self.answers:
                return pos
        return self._clamp(len(self.items) - 1)


def shuffled_answers(item: FlowItem, seed: str) -> list[Answer]:
    """Answer options in a random order that stays stable for one assessment."""
    options = list(item.answers)
    random.Random(f"{seed}:{item.question_id}").shuffle(options)
    return options
