from __future__ import annotations

import copy
import json
import os
import re
from collections.abc import Callable
from typing import Any

os.environ.setdefault("ENVIRONMENT", "test")

import httpx
import pytest
from fastapi.testclient import TestClient

from selfassessment.application.api import ExportClient
from selfassessment.application.progress import MemoryStore
from selfassessment.infrastructure.airtable import AirtableClient
from selfassessment.infrastructure.config import AirtableConfig, ExportConfig
from selfassessment.web.dependencies import (
    get_airtable_client,
    get_export_client,
    get_progress_store,
)
from selfassessment.web.main import create_application

_RECORD_ID_IN_FORMULA = re.compile(r"RECORD_ID\(\) = '([^']+)'")

# Startup: "Strateegia" (Q1, Q2) and "Andmed" (Q3).
# Choosing A11 (30), A21 (40) and A31 (72) scores 35 / 72 -> overall 54.
SEED: dict[str, dict[str, dict[str, Any]]] = {
    "MethodCompanyTypes": {
        "recCTstartup": {
            "companyTypeText_et": "Startup",
            "isActive": True,
            "MethodCategories": ["recCAT1", "recCAT2"],
        },
        "recCTsme": {
            "companyTypeText_et": "SME",
            "isActive": True,
            "MethodCategories": ["recCAT1"],
        },
        "recCTold": {"companyTypeText_et": "Enterprise", "MethodCategories": []},
    },
    "MethodCategories": {
        "recCAT1": {
            "categoryText_et": "Strateegia",
            "categoryDescription_et": "Eesmärgid ja juhtimine",
            "isActive": True,
            "MethodCompanyTypes": ["recCTstartup", "recCTsme"],
            "MethodQuestions": ["recQ2", "recQ1", "recQ9"],
        },
        "recCAT2": {
            "categoryText_et": "Andmed",
            "isActive": True,
            "MethodCompanyTypes": ["recCTstartup"],
            "MethodQuestions": ["recQ3"],
        },
    },
    "MethodQuestions": {
        "recQ1": {
            "questionId": "Q1",
            "questionText_et": "Kas teil on AI strateegia?",
            "isActive": True,
            "MethodCategories": ["recCAT1"],
            "MethodAnswers": ["recA11", "recA12"],
        },
        "recQ2": {
            "questionId": "Q2",
            "questionText_et": "Kas juhtkond toetab?",
            "isActive": True,
            "MethodCategories": ["recCAT1"],
            "MethodAnswers": ["recA21", "recA22"],
        },
        "recQ3": {
            "questionId": "Q3",
            "questionText_et": "Kas andmed on korras?",
            "isActive": True,
            "MethodCategories": ["recCAT2"],
            "MethodAnswers": ["recA31", "recA32"],
        },
        "recQ9": {
            "questionId": "Q9",
            "questionText_et": "Vana küsimus",
            "MethodCategories": ["recCAT1"],
            "MethodAnswers": [],
        },
    },
    "MethodAnswers": {
        "recA11": {"answerText_et": "Ei", "answerScore": 30, "isActive": True, "MethodQuestions": ["recQ1"]},
        "recA12": {"answerText_et": "Jah", "answerScore": 80, "isActive": True, "MethodQuestions": ["recQ1"]},
        "recA21": {"answerText_et": "Vähe", "answerScore": 40, "isActive": True, "MethodQuestions": ["recQ2"]},
        "recA22": {"answerText_et": "Palju", "answerScore": 100, "isActive": True, "MethodQuestions": ["recQ2"]},
        "recA31": {"answerText_et": "Enamasti", "answerScore": 72, "isActive": True, "MethodQuestions": ["recQ3"]},
        "recA32": {"answerText_et": "Ei", "answerScore": 10, "isActive": True, "MethodQuestions": ["recQ3"]},
    },
    "MethodRecommendations": {
        "recREC1": {
            "recommendationText_et": "Koostage strateegia",
            "scoreLevel": "Punane",
            "isActive": True,
            "MethodCategories": ["recCAT1"],
            "SolutionProviders": ["recP1", "recP2"],
        },
        "recREC2": {
            "recommendationText_et": "Leidke partner",
            "scoreLevel": "red",
            "isActive": True,
            "MethodCategories": ["recCAT1"],
            "SolutionProviders": ["recPBAD"],
        },
        "recREC3": {
            "recommendationText_et": "Jätkake samas vaimus",
            "scoreLevel": "Roheline",
            "isActive": True,
            "MethodCategories": ["recCAT2"],
            "MethodCompanyTypes": ["recCTstartup"],
            "SolutionProviders": ["recP1"],
        },
        "recREC5": {
            "recommendationText_et": "Koolitage meeskonda",
            "scoreLevel": "Punane",
            "isActive": True,
            "MethodCategories": ["recCAT1"],
            "SolutionProviders": ["recP2"],
        },
        "recREC4": {
            "recommendationText_et": "Ainult SME",
            "scoreLevel": "Roheline",
            "isActive": True,
            "MethodCategories": ["recCAT2"],
            "MethodCompanyTypes": ["recCTsme"],
        },
    },
    "MethodExampleSolutions": {
        "recSOL1": {
            "exampleSolutionText_et": "Andmeplatvorm",
            "scoreLevel": "green",
            "isActive": True,
            "MethodCategories": ["recCAT2"],
            "SolutionProviders": ["recP2"],
        },
    },
    "SolutionProviders": {
        "recP1": {"providerName_et": "Pakkuja Üks", "providerUrl": "https://one.example", "isActive": True},
        "recP2": {"providerName_et": "Pakkuja Kaks", "isActive": True},
        "recPBAD": {"providerName_et": "Katki", "isActive": True},
    },
    "AssessmentResponses": {},
}


class FakeAirtable:
    """In-memory Airtable base served through ``httpx.MockTransport``."""

    def __init__(self, tables: dict[str, dict[str, dict[str, Any]]]):
        self.tables = copy.deepcopy(tables)
        self.requests: list[httpx.Request] = []
        self.failures: list[Callable[[httpx.Request], int | None]] = []
        self._counter = 0

    def fail_when(self, rule: Callable[[httpx.Request], int | None]) -> None:
        self.failures.append(rule)

    def add(self, table: str, record_id: str, fields: dict[str, Any]) -> None:
        self.tables.setdefault(table, {})[record_id] = dict(fields)

    def requests_for(self, method: str, table: str) -> list[httpx.Request]:
        return [
            r for r in self.requests if r.method == method and r.url.path.split("/")[3] == table
        ]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    @staticmethod
    def _record(record_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        return {"id": record_id, "createdTime": "2026-01-01T00:00:00.000Z", "fields": fields}

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for rule in self.failures:
            status_code = rule(request)
            if status_code:
                return httpx.Response(status_code, json={"error": {"type": "FAKE_FAILURE"}})

        parts = request.url.path.split("/")[3:]
        table = parts[0]
        records = self.tables.setdefault(table, {})

        if len(parts) == 2:
            record_id = parts[1]
            if record_id not in records:
                return httpx.Response(404, json={"error": "NOT_FOUND"})
            if request.method == "PATCH":
                records[record_id].update(json.loads(request.content)["fields"])
            return httpx.Response(200, json=self._record(record_id, records[record_id]))

        if request.method == "POST":
            self._counter += 1
            record_id = f"recNEW{self._counter}"
            fields = dict(json.loads(request.content)["fields"])
            fields.setdefault("responseId", f"RESP-{self._counter:04d}")
            records[record_id] = fields
            return httpx.Response(200, json=self._record(record_id, fields))

        params = request.url.params
        formula = params.get("filterByFormula") or ""
        wanted_ids = set(_RECORD_ID_IN_FORMULA.findall(formula))
        selected = []
        for record_id, fields in records.items():
            if "RECORD_ID()" in formula and record_id not in wanted_ids:
                continue
            if "{isActive} = 1" in formula and not fields.get("isActive"):
                continue
            projection = params.get_list("fields[]")
            shown = {k: v for k, v in fields.items() if not projection or k in projection}
            selected.append(self._record(record_id, shown))

        start = int(params.get("offset") or 0)
        size = int(params.get("pageSize") or 100)
        body: dict[str, Any] = {"records": selected[start : start + size]}
        if start + size < len(selected):
            body["offset"] = str(start + size)
        return httpx.Response(200, json=body)


@pytest.fixture
def fake_airtable() -> FakeAirtable:
    return FakeAirtable(SEED)


@pytest.fixture
def airtable_config() -> AirtableConfig:
    return AirtableConfig(personal_access_token="pat-test", base_id="appTEST")


@pytest.fixture
def airtable_client(fake_airtable: FakeAirtable, airtable_config: AirtableConfig) -> AirtableClient:
    return AirtableClient(airtable_config, transport=fake_airtable.transport())


class FakeExportService:
    def __init__(self):
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.fail = False

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append((request.url.path, json.loads(request.content)))
        if self.fail:
            return httpx.Response(500)
        if request.url.path.endswith("/pdf"):
            return httpx.Response(200, content=b"%PDF-1.4 fake")
        return httpx.Response(200, json={"status": "sent"})


@pytest.fixture
def export_service() -> FakeExportService:
    return FakeExportService()


@pytest.fixture
def export_client(export_service: FakeExportService) -> ExportClient:
    config = ExportConfig(pdf_url="https://export.example/pdf", email_url="https://export.example/email")
    return ExportClient(config, transport=httpx.MockTransport(export_service.handle))


@pytest.fixture
def progress_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def app_client(
    fake_airtable: FakeAirtable,
    airtable_config: AirtableConfig,
    export_client: ExportClient,
    progress_store: MemoryStore,
) -> TestClient:
    app = create_application()
    app.dependency_overrides[get_airtable_client] = lambda: AirtableClient(
        airtable_config, transport=fake_airtable.transport()
    )
    app.dependency_overrides[get_export_client] = lambda: export_client
    app.dependency_overrides[get_progress_store] = lambda: progress_store
    return TestClient(app)
