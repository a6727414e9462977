"""
Async client for the Airtable REST API.

Only the handful of calls the application needs are implemented: filtered
``select`` with offset pagination, ``find``, ``create`` and ``update``. Reads
filtered by a set of record ids are split into several formulas so that no
single ``OR(RECORD_ID() = ...)`` grows past the configured size.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Iterable, Iterator, Sequence
from typing import Any

import httpx

from .config import AirtableConfig, get_settings
from .exceptions import (
    ConfigurationError,
    RecordNotFoundError,
    RecordStoreError,
    ValidationError,
    handle_store_error,
)
from .logging import get_logger

logger = get_logger(__name__)

_RECORD_ID_RE = re.compile(r"^rec[A-Za-z0-9]+$")


def is_record_id(value: str) -> bool:
    return bool(value) and bool(_RECORD_ID_RE.match(value))


def active_formula() -> str:
    return "{isActive} = 1"


def record_id_formula(ids: Iterable[str]) -> str:
    """``OR(RECORD_ID() = 'rec1', ...)`` for a non-empty list of record ids."""
    id_list = list(ids)
    if not id_list:
        raise ValueError("record_id_formula requires at least one id")
    for record_id in id_list:
        if not is_record_id(record_id):
            raise ValidationError("record_id", "Not an Airtable record id", record_id)
    clauses = ",".join(f"RECORD_ID() = '{rid}'" for rid in id_list)
    return f"OR({clauses})"


def field_equals(field: str, value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"{{{field}}} = '{escaped}'"


def and_formula(*parts: str) -> str:
    parts = tuple(p for p in parts if p)
    if len(parts) == 1:
        return parts[0]
    return f"AND({', '.join(parts)})"


def chunked(items: Sequence[str], size: int) -> Iterator[list[str]]:
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


class AirtableClient:
    """
    Thin async wrapper around one Airtable base.

    Example:
        >>> async with AirtableClient() as client:
        ...     records = await client.select("MethodCompanyTypes", formula=active_formula())
    """

    def __init__(
        self,
        config: AirtableConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or get_settings().airtable
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    async def __aenter__(self) -> AirtableClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            if not self.config.is_configured():
                raise ConfigurationError(
                    "Airtable personal access token and base id must be configured",
                    config_key="AIRTABLE_PERSONAL_ACCESS_TOKEN",
                )
            self._http = httpx.AsyncClient(
                base_url=self.config.base_url(),
                headers={"Authorization": f"Bearer {self.config.personal_access_token}"},
                timeout=self.config.timeout_seconds,
                transport=self._transport,
            )
        return self._http

    async def _request(
        self, method: str, path: str, operation: str, **kwargs: Any
    ) -> dict[str, Any]:
        client = self._client()
        try:
            response = await client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Airtable {operation} failed: {str(e)}")
            raise handle_store_error(e, operation) from e
        return response.json()

    async def select(
        self,
        table: str,
        formula: str | None = None,
        fields: Sequence[str] | None = None,
        sort: Sequence[tuple[str, str]] | None = None,
    ) -> list[dict[str, Any]]:
        """All records of ``table`` matching ``formula``, following ``offset`` pages."""
        base_params: list[tuple[str, str]] = [("pageSize", str(self.config.page_size))]
        if formula:
            base_params.append(("filterByFormula", formula))
        for field in fields or ():
            base_params.append(("fields[]", field))
        for pos, (field, direction) in enumerate(sort or ()):
            base_params.append((f"sort[{pos}][field]", field))
            base_params.append((f"sort[{pos}][direction]", direction))

        records: list[dict[str, Any]] = []
        offset: str | None = None
        while True:
            params = list(base_params)
            if offset:
                params.append(("offset", offset))
            page = await self._request("GET", f"/{table}", f"{table}.select", params=params)
            records.extend(page.get("records", []))
            offset = page.get("offset")
            if not offset:
                break

        logger.debug(f"Selected {len(records)} records from {table}")
        return records

    async def select_by_ids(
        self,
        table: str,
        ids: Iterable[str],
        fields: Sequence[str] | None = None,
        active_only: bool = True,
    ) -> list[dict[str, Any]]:
        """
        Records of ``table`` whose id is in ``ids``.

        The id set is split into chunks fetched concurrently; results are merged
        and de-duplicated by record id.
        """
        unique_ids = list(dict.fromkeys(i for i in ids if i))
        if not unique_ids:
            return []

        chunks = list(chunked(unique_ids, self.config.max_ids_per_formula))
        pages = await asyncio.gather(
            *(
                self.select(
                    table,
                    formula=and_formula(
                        active_formula() if active_only else "", record_id_formula(chunk)
                    ),
                    fields=fields,
                )
                for chunk in chunks
            )
        )

        merged: dict[str, dict[str, Any]] = {}
        for page in pages:
            for record in page:
                merged.setdefault(record.get("id"), record)
        return list(merged.values())

    async def find(self, table: str, record_id: str) -> dict[str, Any]:
        if not is_record_id(record_id):
            raise RecordNotFoundError(table, record_id)
        try:
            return await self._request("GET", f"/{table}/{record_id}", f"{table}.find")
        except RecordStoreError as e:
            if e.status_code == 404:
                raise RecordNotFoundError(table, record_id) from e
            raise

    async def create(self, table: str, fields: dict[str, Any]) -> dict[str, Any]:
        return await self._request(
            "POST", f"/{table}", f"{table}.create", json={"fields": fields, "typecast": True}
        )

    async def update(self, table: str, record_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        if not is_record_id(record_id):
            raise RecordNotFoundError(table, record_id)
        return await self._request(
            "PATCH", f"/{table}/{record_id}", f"{table}.update", json={"fields": fields}
        )
