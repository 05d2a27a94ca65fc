# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""FHIR server implementations of the store, evaluator and subject source."""

import logging
from typing import Any

import httpx

from cgb.evaluation import EvaluationError, Subject
from cgb.library import Library
from cgb.persistence import (
    LibraryNotFoundError,
    LibraryPage,
    PersistenceError,
    SortKey,
    SortOrder,
)

logger = logging.getLogger(__name__)

FHIR_JSON: str = "application/fhir+json"
SORT_PARAMS: dict[str, str] = {
    "name": "name",
    "version": "version",
    "date": "_lastUpdated",
}


class FhirClient:
    """Share one FHIR base URL and HTTP client across resource operations."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize client configuration.

        Args:
            base_url: FHIR server base URL.
            timeout_seconds: Request timeout used for the owned client.
            client: Optional preconfigured client.
        """
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0)
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self, method: str, path: str, **kwargs: Any
    ) -> httpx.Response:
        """Send one request and raise for error statuses.

        Raises:
            httpx.HTTPError: If the transport fails or the status is an error.
        """
        headers = {"Accept": FHIR_JSON, "Content-Type": FHIR_JSON}
        response = await self._client.request(
            method, f"{self._base_url}/{path}", headers=headers, **kwargs
        )
        response.raise_for_status()
        return response


class FhirLibraryStore:
    """Store libraries on a FHIR server."""

    def __init__(self, client: FhirClient) -> None:
        self._client = client

    async def get(self, library_id: str) -> Library:
        resource = await self._json("GET", f"Library/{library_id}")
        return Library.from_resource(resource)

    async def search(self, term: str) -> list[Library]:
        bundle = await self._json(
            "GET", "Library", params={"name:contains": term.strip()}
        )
        return _bundle_libraries(bundle)

    async def create(self, library: Library) -> Library:
        if not library.id:
            raise PersistenceError("Cannot create a library without an id.")
        response = await self._call(
            "PUT", f"Library/{library.id}", json=library.to_resource()
        )
        return _stored(response, library)

    async def update(self, library: Library) -> Library:
        if not library.id:
            raise PersistenceError("Cannot update a library without an id.")
        response = await self._call(
            "PUT", f"Library/{library.id}", json=library.to_resource()
        )
        return _stored(response, library)

    async def delete(self, library: Library) -> None:
        if not library.id:
            raise PersistenceError("Cannot delete a library without an id.")
        await self._call("DELETE", f"Library/{library.id}")

    async def list_page(
        self, page: int, size: int, sort_by: SortKey, sort_order: SortOrder
    ) -> LibraryPage:
        sort_param = SORT_PARAMS.get(sort_by, "name")
        if sort_order == "desc":
            sort_param = f"-{sort_param}"
        bundle = await self._json(
            "GET",
            "Library",
            params={
                "_count": size,
                "_getpagesoffset": max(page - 1, 0) * size,
                "_sort": sort_param,
                "_total": "accurate",
            },
        )
        return LibraryPage(
            items=_bundle_libraries(bundle),
            total=bundle.get("total"),
            has_next=any(
                link.get("relation") == "next" for link in bundle.get("link") or []
            ),
        )

    async def _json(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        response = await self._call(method, path, **kwargs)
        payload = _json_or_none(response)
        if not isinstance(payload, dict):
            logger.warning(
                f"FHIR library response is not a JSON resource (method={method} path={path})"
            )
            raise PersistenceError(f"Unexpected response body for {method} {path}")
        return payload

    async def _call(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            message = operation_outcome_message(exc.response) or f"HTTP {status}"
            logger.warning(
                f"FHIR library request rejected (method={method} path={path} status={status})"
            )
            if status in (404, 410):
                raise LibraryNotFoundError(message) from exc
            raise PersistenceError(message) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                f"FHIR library request failed (method={method} path={path} error={exc})"
            )
            raise PersistenceError(str(exc)) from exc


class FhirEvaluator:
    """Evaluate libraries with the FHIR ``Library/$evaluate`` operation."""

    def __init__(self, client: FhirClient) -> None:
        self._client = client

    async def evaluate(self, library_id: str, parameters: dict[str, Any]) -> Any:
        """Evaluate a library.

        Raises:
            EvaluationError: If the operation fails.
        """
        path = f"Library/{library_id}/$evaluate"
        try:
            response = await self._client.request("POST", path, json=parameters)
        except httpx.HTTPStatusError as exc:
            payload = _json_or_none(exc.response)
            message = operation_outcome_message(exc.response) or (
                f"HTTP {exc.response.status_code}"
            )
            raise EvaluationError(message, payload=payload) from exc
        except httpx.HTTPError as exc:
            raise EvaluationError(str(exc)) from exc
        payload = _json_or_none(response)
        if payload is None:
            raise EvaluationError(
                f"Evaluation response is not JSON (HTTP {response.status_code})"
            )
        return payload


class FhirSubjectSource:
    """List test subjects from the FHIR ``Patient`` endpoint."""

    def __init__(self, client: FhirClient, count: int = 200) -> None:
        self._client = client
        self._count = count

    async def search(self, term: str) -> list[Subject]:
        params: dict[str, Any] = {"_count": self._count}
        if term.strip():
            params["name"] = term.strip()
        try:
            response = await self._client.request("GET", "Patient", params=params)
        except httpx.HTTPError as exc:
            logger.warning(f"Patient search failed (term={term!r} error={exc})")
            raise
        bundle = response.json()
        return [
            Subject.from_patient(entry["resource"])
            for entry in bundle.get("entry") or []
            if entry.get("resource")
        ]


def operation_outcome_message(response: httpx.Response) -> str | None:
    """Return the first diagnostics text of an OperationOutcome body."""
    payload = _json_or_none(response)
    if not isinstance(payload, dict):
        return None
    for issue in payload.get("issue") or []:
        text = issue.get("diagnostics") or (issue.get("details") or {}).get("text")
        if text:
            return str(text)
    return None


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _bundle_libraries(bundle: dict[str, Any]) -> list[Library]:
    return [
        Library.from_resource(entry["resource"])
        for entry in bundle.get("entry") or []
        if entry.get("resource")
    ]


def _stored(response: httpx.Response, fallback: Library) -> Library:
    payload = _json_or_none(response)
    if isinstance(payload, dict) and payload.get("resourceType") == "Library":
        return Library.from_resource(payload)
    return fallback
