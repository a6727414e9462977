from __future__ import annotations

import json

from selfassessment.application.progress import ANSWERS_KEY, SYNC_STATUS_KEY
from selfassessment.domain.schemas import ProgressContent

TABLE = "AssessmentResponses"


def add_response(fake_airtable, record_id="recRESP1", status="In Progress", answers=None):
    fake_airtable.add(
        TABLE,
        record_id,
        {
            "responseId": "RESP-1",
            "initialGoal": "Kasv",
            "responseStatus": status,
            "isActive": True,
            "MethodCompanyTypes": ["recCTstartup"],
            "responseContent": ProgressContent(answers=answers or {}).to_json(),
        },
    )


def answer(client, question_id, answer_id, index, record_id="recRESP1"):
    return client.post(
        f"/assessment/{record_id}/answer",
        data={"question_id": question_id, "answer_id": answer_id, "index": str(index)},
        follow_redirects=False,
    )


def test_setup_page_lists_company_types(app_client):
    response = app_client.get("/?type=startup")

    assert response.status_code == 200
    assert "Startup" in response.text and "SME" in response.text
    assert "assessment_session" in response.cookies


def test_setup_requires_goal(app_client, fake_airtable):
    response = app_client.post("/", data={"company_type": "recCTstartup", "initial_goal": ""})

    assert response.status_code == 422
    assert fake_airtable.requests_for("POST", TABLE) == []


def test_full_walkthrough(app_client, fake_airtable, progress_store):
    started = app_client.post(
        "/",
        data={"company_type": "recCTstartup", "initial_goal": "Kasvatada müüki"},
        follow_redirects=False,
    )
    assert started.status_code == 303
    assert started.headers["location"] == "/assessment/recNEW1/details"

    details_page = app_client.get("/assessment/recNEW1/details")
    assert details_page.status_code == 200

    details = app_client.post(
        "/assessment/recNEW1/details",
        data={"contact_name": "Mari", "contact_email": "mari@example.ee", "company_name": "OÜ Näide"},
        follow_redirects=False,
    )
    assert details.headers["location"] == "/assessment/recNEW1/questions"

    first = app_client.get("/assessment/recNEW1/questions")
    assert "Kas teil on AI strateegia?" in first.text

    assert answer(app_client, "recQ1", "recA11", 0, "recNEW1").headers["location"].endswith("index=1")
    assert answer(app_client, "recQ2", "recA21", 1, "recNEW1").headers["location"].endswith("index=2")
    last = answer(app_client, "recQ3", "recA31", 2, "recNEW1")

    assert last.headers["location"] == "/assessment/recNEW1/results"
    assert fake_airtable.tables[TABLE]["recNEW1"]["responseStatus"] == "Completed"

    results = app_client.get("/assessment/recNEW1/results")
    assert results.status_code == 200
    assert "Üldskoor: 54%" in results.text
    assert "Koostage strateegia" in results.text
    assert "Vastuseid ei õnnestunud" not in results.text

    # a completed assessment always lands on its results
    again = app_client.get("/assessment/recNEW1/questions", follow_redirects=False)
    assert again.headers["location"] == "/assessment/recNEW1/results"


def test_details_of_started_assessment_redirect(app_client, fake_airtable):
    add_response(fake_airtable)

    response = app_client.get("/assessment/recRESP1/details", follow_redirects=False)

    assert response.headers["location"] == "/assessment/recRESP1/questions"


def test_invalid_details_are_shown_again(app_client, fake_airtable):
    add_response(fake_airtable, status="New")

    response = app_client.post(
        "/assessment/recRESP1/details",
        data={"contact_name": "Mari", "contact_email": "pole", "company_name": "OÜ Näide"},
    )

    assert response.status_code == 422
    assert "E-post: palun kontrollige sisestatud väärtust" in response.text
    assert fake_airtable.tables[TABLE]["recRESP1"]["responseStatus"] == "New"


def test_questions_before_details_redirect(app_client, fake_airtable):
    add_response(fake_airtable, status="New")

    response = app_client.get("/assessment/recRESP1/questions", follow_redirects=False)

    assert response.headers["location"] == "/assessment/recRESP1/details"


def test_questions_resume_at_first_unanswered(app_client, fake_airtable):
    add_response(fake_airtable, answers={"recQ1": "recA12"})

    response = app_client.get("/assessment/recRESP1/questions")

    assert "Kas juhtkond toetab?" in response.text
    assert "Küsimus 2 / 3" in response.text


def test_answer_is_cached_even_when_sync_fails(app_client, fake_airtable, progress_store):
    add_response(fake_airtable)
    fake_airtable.fail_when(lambda request: 500 if request.method == "PATCH" else None)

    response = answer(app_client, "recQ1", "recA12", 0)

    assert response.status_code == 303
    assert json.loads(progress_store.get(ANSWERS_KEY)) == {"recQ1": "recA12"}
    assert progress_store.get(SYNC_STATUS_KEY) == "offline"


def test_last_question_reaches_results_when_store_is_down(app_client, fake_airtable):
    add_response(fake_airtable, answers={"recQ1": "recA11", "recQ2": "recA21"})
    fake_airtable.fail_when(lambda request: 500 if request.method == "PATCH" else None)

    last = answer(app_client, "recQ3", "recA31", 2)
    results = app_client.get(last.headers["location"])

    assert last.headers["location"] == "/assessment/recRESP1/results"
    assert fake_airtable.tables[TABLE]["recRESP1"]["responseStatus"] == "In Progress"
    assert results.status_code == 200
    assert "Üldskoor: 54%" in results.text
    assert "Vastuseid ei õnnestunud" in results.text


def test_stale_answer_form_is_redirected(app_client, fake_airtable, progress_store):
    add_response(fake_airtable)

    response = answer(app_client, "recQ3", "recA31", 0)

    assert response.headers["location"] == "/assessment/recRESP1/questions?index=0"
    assert json.loads(progress_store.get(ANSWERS_KEY)) == {}


def test_answer_of_another_question_is_rejected(app_client, fake_airtable):
    add_response(fake_airtable)

    response = answer(app_client, "recQ1", "recA31", 0)

    assert response.status_code == 422


def test_next_on_last_question_needs_an_answer(app_client, fake_airtable):
    add_response(fake_airtable, answers={"recQ1": "recA11", "recQ2": "recA21"})

    blocked = app_client.post("/assessment/recRESP1/next", data={"index": "2"}, follow_redirects=False)
    moved = app_client.post("/assessment/recRESP1/next", data={"index": "0"}, follow_redirects=False)
    back = app_client.post("/assessment/recRESP1/previous", data={"index": "0"}, follow_redirects=False)

    assert blocked.status_code == 200
    assert "Palun vali vastus enne jätkamist." in blocked.text
    assert moved.headers["location"] == "/assessment/recRESP1/questions?index=1"
    assert back.headers["location"] == "/assessment/recRESP1/questions?index=0"


def test_legacy_results_link(app_client):
    redirected = app_client.get("/assessment/results?id=recRESP1", follow_redirects=False)
    missing = app_client.get("/assessment/results")

    assert redirected.headers["location"] == "/assessment/recRESP1/results"
    assert missing.status_code == 404


def test_missing_assessment_shows_error_page(app_client):
    response = app_client.get("/assessment/recRESP404/results")

    assert response.status_code == 404
    assert "Midagi läks valesti" in response.text
    assert "Otsitud hindamist ei leitud." in response.text


def test_store_outage_offers_retry(app_client, fake_airtable):
    fake_airtable.fail_when(lambda request: 503)

    response = app_client.get("/")

    assert response.status_code == 502
    assert "Proovi uuesti" in response.text


def test_email_export_from_results_page(app_client, fake_airtable, export_service):
    add_response(fake_airtable, answers={"recQ1": "recA11", "recQ2": "recA21", "recQ3": "recA31"})

    sent = app_client.post(
        "/assessment/recRESP1/export/email",
        data={"name": "Mari", "email": "mari@example.ee", "wants_contact": "true"},
    )
    invalid = app_client.post(
        "/assessment/recRESP1/export/pdf", data={"name": "", "email": "mari@example.ee"}
    )

    assert sent.status_code == 200
    assert "Tulemused saadeti aadressile mari@example.ee" in sent.text
    assert export_service.calls[0][1]["wantsContact"] is True
    assert invalid.status_code == 422
    assert len(export_service.calls) == 1


def test_pdf_download_from_results_page(app_client, fake_airtable):
    add_response(fake_airtable)

    response = app_client.post(
        "/assessment/recRESP1/export/pdf", data={"name": "Mari", "email": "mari@example.ee"}
    )

    assert response.status_code == 200
    assert response.content.startswith(b"%PDF")
    assert "ai-valmiduse-hinnang.pdf" in response.headers["content-disposition"]


def test_inactive_assessment_shows_error_page(app_client, fake_airtable):
    add_response(fake_airtable, answers={"recQ1": "recA11", "recQ2": "recA21", "recQ3": "recA31"})
    fake_airtable.tables[TABLE]["recRESP1"]["isActive"] = False

    response = app_client.get("/assessment/recRESP1/results")

    assert response.status_code == 404
    assert "Midagi läks valesti" in response.text
