from __future__ import annotations

import pytest

from selfassessment.domain.flow import (
    CategoryWithQuestions,
    FlowAction,
    QuestionFlow,
    flatten_structure,
    shuffled_answers,
)
from selfassessment.domain.models import Answer, Category, Question
from selfassessment.infrastructure.exceptions import ValidationError


def _question(qid: str, display: str, category_ids: list[str]) -> Question:
    return Question(id=qid, question_id=display, text=display, category_ids=category_ids)


def _answers(qid: str, *scores: int) -> list[Answer]:
    return [
        Answer(id=f"{qid}-A{pos}", text=f"Vastus {pos}", score=score, question_ids=[qid])
        for pos, score in enumerate(scores, start=1)
    ]


@pytest.fixture
def structure() -> list[CategoryWithQuestions]:
    q1 = _question("recQ1", "Q1", ["recCAT1"])
    q2 = _question("recQ2", "Q2", ["recCAT1", "recCAT2"])
    q3 = _question("recQ3", "Q3", ["recCAT2"])
    return [
        CategoryWithQuestions(
            category=Category(id="recCAT1", text="Strateegia"),
            questions=[q2, q1],
            answers={"recQ1": _answers("recQ1", 30, 80), "recQ2": _answers("recQ2", 40, 100)},
        ),
        CategoryWithQuestions(
            category=Category(id="recCAT2", text="Andmed"),
            questions=[q2, q3],
            answers={"recQ2": _answers("recQ2", 40, 100), "recQ3": _answers("recQ3", 72, 10)},
        ),
    ]


def test_flatten_sorts_and_dedupes(structure):
    items = flatten_structure(structure)

    assert [i.question_id for i in items] == ["recQ1", "recQ2", "recQ3"]
    assert items[1].category_id == "recCAT1"
    assert [a.score for a in items[2].answers] == [72, 10]


def test_select_advances_and_finalizes_on_last(structure):
    flow = QuestionFlow(flatten_structure(structure))

    assert flow.select("recQ1-A1") == FlowAction.MOVED
    assert flow.index == 1
    assert flow.select("recQ2-A2") == FlowAction.MOVED
    assert flow.is_last
    assert flow.select("recQ3-A1") == FlowAction.FINALIZE
    assert flow.is_complete()
    assert flow.answers == {"recQ1": "recQ1-A1", "recQ2": "recQ2-A2", "recQ3": "recQ3-A1"}


def test_next_on_last_question_needs_an_answer(structure):
    flow = QuestionFlow(flatten_structure(structure), index=2)

    assert flow.next() == FlowAction.BLOCKED
    assert flow.index == 2

    flow.answers = {"recQ3": "recQ3-A2"}
    assert flow.next() == FlowAction.FINALIZE


def test_previous_stops_at_first(structure):
    flow = QuestionFlow(flatten_structure(structure), index=1)

    assert flow.previous() == FlowAction.MOVED
    assert flow.is_first
    assert flow.previous() == FlowAction.STAYED
    assert flow.index == 0


def test_select_rejects_answer_of_another_question(structure):
    flow = QuestionFlow(flatten_structure(structure))

    with pytest.raises(ValidationError):
        flow.select("recQ3-A1")
    assert flow.answers == {}


def test_index_is_clamped(structure):
    flow = QuestionFlow(flatten_structure(structure), index=99)
    assert flow.index == 2

    flow.go_to(-4)
    assert flow.index == 0


def test_progress(structure):
    flow = QuestionFlow(flatten_structure(structure), answers={"recQ1": "recQ1-A1", "recQ3": "recQ3-A1"})

    assert flow.progress_percentage() == pytest.approx(200 / 3)
    progress = {cp.category_id: cp for cp in flow.categories_progress()}
    assert (progress["recCAT1"].answered, progress["recCAT1"].total) == (1, 2)
    assert progress["recCAT1"].progress == 50.0
    assert (progress["recCAT2"].answered, progress["recCAT2"].total) == (1, 1)
    assert flow.first_unanswered_index() == 1


def test_first_unanswered_when_all_answered_is_last(structure):
    answers = {"recQ1": "recQ1-A1", "recQ2": "recQ2-A1", "recQ3": "recQ3-A1"}
    flow = QuestionFlow(flatten_structure(structure), answers=answers)

    assert flow.first_unanswered_index() == 2


def test_empty_flow():
    flow = QuestionFlow([])

    assert flow.current is None
    assert flow.next() == FlowAction.STAYED
    assert flow.progress_percentage() == 0.0
    assert not flow.is_complete()
    with pytest.raises(ValidationError):
        flow.select("recA1")


def test_shuffled_answers_are_stable_per_seed(structure):
    item = flatten_structure(structure)[0]

    first = shuffled_answers(item, seed="recRESP1")
    again = shuffled_answers(item, seed="recRESP1")

    assert [a.id for a in first] == [a.id for a in again]
    assert sorted(a.id for a in first) == ["recQ1-A1", "recQ1-A2"]
