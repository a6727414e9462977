from __future__ import annotations

import json

import pytest

from selfassessment.domain.models import (
    AssessmentResponse,
    CompanyType,
    MaturityBucket,
    Question,
    Recommendation,
    ResponseStatus,
    is_valid_transition,
    map_company_type,
    validate_transition,
)
from selfassessment.domain.schemas import (
    AssessmentSetupInput,
    CompanyDetailsInput,
    ExportFormInput,
    ProgressContent,
    ResponseContent,
    extract_answers,
    parse_response_content,
    validate_input,
)
from selfassessment.infrastructure.exceptions import InvalidTransitionError, MalformedRecordError


# ---------- Status transitions ----------


@pytest.mark.parametrize(
    ("current", "new", "allowed"),
    [
        (ResponseStatus.NEW, ResponseStatus.IN_PROGRESS, True),
        (ResponseStatus.IN_PROGRESS, ResponseStatus.COMPLETED, True),
        (ResponseStatus.NEW, ResponseStatus.COMPLETED, False),
        (ResponseStatus.IN_PROGRESS, ResponseStatus.NEW, False),
        (ResponseStatus.COMPLETED, ResponseStatus.IN_PROGRESS, False),
        (ResponseStatus.COMPLETED, ResponseStatus.COMPLETED, False),
        ("New", "InProgress", True),
        ("in_progress", "Completed", True),
        ("Archived", "Completed", False),
    ],
)
def test_transition_table(current, new, allowed):
    assert is_valid_transition(current, new) is allowed


def test_validate_transition_raises():
    with pytest.raises(InvalidTransitionError):
        validate_transition(ResponseStatus.COMPLETED, ResponseStatus.IN_PROGRESS)
    with pytest.raises(InvalidTransitionError):
        validate_transition(None, ResponseStatus.IN_PROGRESS)
    validate_transition(ResponseStatus.NEW, ResponseStatus.IN_PROGRESS)


def test_status_and_bucket_parsing():
    assert ResponseStatus.parse("In Progress") is ResponseStatus.IN_PROGRESS
    assert ResponseStatus.parse("in-progress") is ResponseStatus.IN_PROGRESS
    assert MaturityBucket.parse("Punane") is MaturityBucket.RED
    assert MaturityBucket.parse("GREEN") is MaturityBucket.GREEN
    with pytest.raises(ValueError):
        ResponseStatus.parse("Archived")
    with pytest.raises(ValueError):
        MaturityBucket.parse("blue")


@pytest.mark.parametrize(
    ("value", "expected"),
    [("startup", "Startup"), (" SME ", "SME"), ("Enterprise", "Enterprise"), ("Muu", "Muu")],
)
def test_map_company_type(value, expected):
    assert map_company_type(value) == expected


# ---------- Input schemas ----------


def test_setup_input_requires_goal():
    result = validate_input(AssessmentSetupInput, {"company_type": "startup", "initial_goal": "   "})

    assert not result.success
    assert any(e.field == "initial_goal" for e in result.errors)


def test_setup_input_strips_markup():
    result = validate_input(
        AssessmentSetupInput,
        {"company_type": "startup", "initial_goal": "<b>Kasv</b><script>alert(1)</script>"},
    )

    assert result.success
    assert result.data["initial_goal"] == "Kasv"


def test_company_details_email():
    ok = validate_input(
        CompanyDetailsInput,
        {
            "contact_name": "Mari",
            "contact_email": "Mari@Example.EE",
            "company_name": "OÜ Näide",
            "company_type": "recCTstartup",
        },
    )
    bad = validate_input(
        CompanyDetailsInput,
        {
            "contact_name": "Mari",
            "contact_email": "not-an-email",
            "company_name": "OÜ Näide",
            "company_type": "recCTstartup",
        },
    )

    assert ok.success and ok.data["contact_email"] == "mari@example.ee"
    assert not bad.success
    assert [e.field for e in bad.errors] == ["contact_email"]


def test_export_form_payload():
    form = ExportFormInput(name="Mari", email="mari@example.ee", organisation_name="  ")

    assert form.organisation_name is None
    assert form.to_payload("recRESP1") == {
        "assessmentId": "recRESP1",
        "name": "Mari",
        "email": "mari@example.ee",
        "organisationName": "",
        "organisationRegNumber": "",
        "wantsContact": False,
    }


# ---------- Response content ----------


def test_empty_content_is_an_empty_answer_map():
    assert parse_response_content("") == ProgressContent()
    assert extract_answers(None) == {}


def test_progress_content_shape():
    raw = ProgressContent(answers={"recQ1": "recA11"}, company_type="recCTstartup").to_json()

    content = parse_response_content(raw)

    assert isinstance(content, ProgressContent)
    assert content.answers == {"recQ1": "recA11"}
    assert json.loads(raw)["companyType"] == "recCTstartup"


def test_legacy_responses_shape():
    raw = json.dumps(
        {
            "companyType": "recCTsme",
            "responses": [
                {"questionId": "recQ1", "answerId": "recA12"},
                {"questionId": "recQ2"},
            ],
        }
    )

    content = parse_response_content(raw)

    assert isinstance(content, ProgressContent)
    assert content.answers == {"recQ1": "recA12"}
    assert content.company_type == "recCTsme"


def test_final_content_shape():
    raw = json.dumps(
        {
            "metadata": {
                "submittedAt": "2026-03-01T12:00:00Z",
                "companyType": "recCTstartup",
                "goal": "Kasv",
                "overallScore": 54,
            },
            "categories": [
                {
                    "categoryId": "recCAT1",
                    "score": 35,
                    "questions": [
                        {"questionId": "recQ1", "answer": {"answerId": "recA11", "answerScore": 30}}
                    ],
                }
            ],
        }
    )

    content = parse_response_content(raw)

    assert isinstance(content, ResponseContent)
    assert extract_answers(raw) == {"recQ1": "recA11"}


@pytest.mark.parametrize("raw", ["{not json", "[1, 2]", '{"answers": ["recQ1"]}'])
def test_unreadable_content_raises_value_error(raw):
    with pytest.raises(ValueError):
        parse_response_content(raw)


# ---------- Records ----------


def test_record_without_fields_is_malformed():
    with pytest.raises(MalformedRecordError):
        CompanyType.from_record({"id": "recCT1"})


def test_question_without_category_is_malformed():
    with pytest.raises(MalformedRecordError) as exc_info:
        Question.from_record({"id": "recQ1", "fields": {"questionText_et": "Miks?"}})

    assert any("MethodCategories" in p for p in exc_info.value.details["problems"])


def test_response_defaults():
    response = AssessmentResponse.from_record(
        {"id": "recRESP1", "fields": {"initialGoal": "Kasv", "MethodCompanyTypes": ["recCT1"]}}
    )

    assert response.status is ResponseStatus.NEW
    assert response.is_active is False
    assert response.company_type_id == "recCT1"


def test_recommendation_scope():
    rec = Recommendation.from_record(
        {
            "id": "recREC1",
            "fields": {
                "recommendationText_et": "Tehke plaan",
                "scoreLevel": "Kollane",
                "MethodCategories": ["recCAT1"],
                "MethodCompanyTypes": ["recCTsme"],
            },
        }
    )

    assert rec.score_level is MaturityBucket.YELLOW
    assert rec.applies_to("recCAT1", "recCTsme")
    assert rec.applies_to("recCAT1", None)
    assert not rec.applies_to("recCAT1", "recCTstartup")
    assert not rec.applies_to("recCAT2", "recCTsme")
