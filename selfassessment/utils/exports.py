from __future__ import annotations

import io
import json

import pandas as pd

ANSWER_COLUMNS = [
    "Category",
    "CategoryScore",
    "Level",
    "QuestionID",
    "Question",
    "AnswerID",
    "Answer",
    "AnswerScore",
]


def report_answers_frame(report) -> pd.DataFrame:
    """One row per answered question, with the score and bucket of its category."""
    rows = [
        {
            "Category": c.category.text,
            "CategoryScore": c.score,
            "Level": c.maturity_level,
            "QuestionID": a.question.display_id,
            "Question": a.question.text,
            "AnswerID": a.answer.id,
            "Answer": a.answer.text,
            "AnswerScore": a.answer.score,
        }
        for c in report.categories
        for a in c.answered
    ]
    return pd.DataFrame(rows, columns=ANSWER_COLUMNS)


def make_json_export_payload(report) -> str:
    payload = {
        "response_id": report.response.response_id or report.response.id,
        "company_type": report.company_type.text,
        "goal": report.goal,
        "overall_score": report.overall_score,
        "overall_level": report.overall_bucket.label,
        "submitted_at": report.submitted_at.isoformat() if report.submitted_at else None,
        "answers": report_answers_frame(report).to_dict(orient="records"),
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


def make_xlsx_export_bytes(report) -> bytes:
    """Workbook with a category summary sheet and an answers sheet."""
    summary = pd.DataFrame(
        [
            {
                "Category": c.category.text,
                "Score": c.score,
                "Level": c.maturity_level,
                "Answered": len(c.answered),
                "Questions": c.question_count,
                "Recommendations": "\n".join(r.text for r in c.recommendations),
            }
            for c in report.categories
        ],
        columns=["Category", "Score", "Level", "Answered", "Questions", "Recommendations"],
    )
    overall = pd.DataFrame(
        [{"Category": "Kokku", "Score": report.overall_score, "Level": report.overall_bucket.label}]
    )
    summary = pd.concat([summary, overall], ignore_index=True) if not summary.empty else overall

    bio = io.BytesIO()
    with pd.ExcelWriter(bio, engine="xlsxwriter") as writer:
        summary.to_excel(writer, index=False, sheet_name="Summary")
        report_answers_frame(report).to_excel(writer, index=False, sheet_name="Answers")
    return bio.getvalue()
