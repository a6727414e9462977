from __future__ import annotations

import pytest

from selfassessment.domain.models import MaturityBucket
from selfassessment.infrastructure.exceptions import MissingPrerequisiteError, RecordNotFoundError
from selfassessment.infrastructure.repositories_reference import (
    ReferenceRepository,
    ResponseRepository,
)


@pytest.fixture
def reference(airtable_client) -> ReferenceRepository:
    return ReferenceRepository(airtable_client)


@pytest.mark.asyncio
async def test_list_company_types_returns_active_only(reference):
    company_types = await reference.list_company_types()

    assert sorted(ct.text for ct in company_types) == ["SME", "Startup"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("value", "expected"),
    [("startup", "recCTstartup"), ("SME", "recCTsme"), ("recCTsme", "recCTsme")],
)
async def test_resolve_company_type(reference, value, expected):
    company_type = await reference.resolve_company_type(value)

    assert company_type.id == expected


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [None, "", "  ", "enterprise"])
async def test_resolve_company_type_missing_or_unknown(reference, value):
    with pytest.raises(MissingPrerequisiteError):
        await reference.resolve_company_type(value)


@pytest.mark.asyncio
async def test_inactive_company_type_is_not_found(reference):
    with pytest.raises(RecordNotFoundError):
        await reference.get_company_type("recCTold")


@pytest.mark.asyncio
async def test_assessment_structure(reference):
    structure = await reference.get_assessment_structure("recCTstartup")

    assert [block.category.id for block in structure] == ["recCAT1", "recCAT2"]
    strategy, data = structure
    assert [q.display_id for q in strategy.questions] == ["Q1", "Q2"]
    assert sorted(a.id for a in strategy.answers["recQ1"]) == ["recA11", "recA12"]
    assert [q.id for q in data.questions] == ["recQ3"]
    assert [a.score for a in sorted(data.answers["recQ3"], key=lambda a: a.id)] == [72, 10]


@pytest.mark.asyncio
async def test_structure_of_company_type_without_categories(reference, fake_airtable):
    fake_airtable.add(
        "MethodCompanyTypes", "recCTempty", {"companyTypeText_et": "Tühi", "isActive": True}
    )

    assert await reference.get_assessment_structure("recCTempty") == []


@pytest.mark.asyncio
async def test_list_questions_and_answers_by_parent(reference):
    questions = await reference.list_questions(["recCAT1"], sort_by_id=True)
    answers = await reference.list_answers(["recQ2"])

    assert [q.id for q in questions] == ["recQ1", "recQ2"]
    assert sorted(a.id for a in answers) == ["recA21", "recA22"]


@pytest.mark.asyncio
async def test_recommendations_by_level_and_company_type(reference):
    red = await reference.list_recommendations("recCAT1", MaturityBucket.RED, "recCTstartup")
    green_startup = await reference.list_recommendations(
        "recCAT2", MaturityBucket.GREEN, "recCTstartup"
    )
    green_sme = await reference.list_recommendations("recCAT2", MaturityBucket.GREEN, "recCTsme")
    yellow = await reference.list_recommendations("recCAT1", MaturityBucket.YELLOW, "recCTstartup")

    assert sorted(r.id for r in red) == ["recREC1", "recREC2", "recREC5"]
    assert [r.id for r in green_startup] == ["recREC3"]
    assert [r.id for r in green_sme] == ["recREC4"]
    assert yellow == []


@pytest.mark.asyncio
async def test_example_solutions_and_providers(reference):
    solutions = await reference.list_example_solutions("recCAT2", MaturityBucket.GREEN, None)
    providers = await reference.list_providers_for_recommendation("recREC1")
    solution_providers = await reference.list_providers_for_example_solution("recSOL1")

    assert [s.id for s in solutions] == ["recSOL1"]
    assert sorted(p.name for p in providers) == ["Pakkuja Kaks", "Pakkuja Üks"]
    assert [p.id for p in solution_providers] == ["recP2"]


@pytest.mark.asyncio
async def test_get_response(airtable_client, fake_airtable):
    fake_airtable.add(
        "AssessmentResponses",
        "recRESP1",
        {
            "initialGoal": "Kasv",
            "responseStatus": "In Progress",
            "isActive": True,
            "MethodCompanyTypes": ["recCTsme"],
        },
    )
    responses = ResponseRepository(airtable_client)

    found = await responses.get_response("recRESP1")
    missing = await responses.get_response("recRESP404")

    assert found is not None and found.company_type_id == "recCTsme"
    assert missing is None


@pytest.mark.asyncio
async def test_inactive_response_is_not_found(airtable_client, fake_airtable):
    # unchecked checkboxes are omitted by Airtable
    fake_airtable.add(
        "AssessmentResponses",
        "recRESP1",
        {"initialGoal": "Kasv", "responseStatus": "Completed", "MethodCompanyTypes": ["recCTsme"]},
    )
    fake_airtable.add(
        "AssessmentResponses",
        "recRESP2",
        {"initialGoal": "Kasv", "responseStatus": "Completed", "isActive": False},
    )
    responses = ResponseRepository(airtable_client)

    assert await responses.get_response("recRESP1") is None
    assert await responses.get_response("recRESP2") is None
