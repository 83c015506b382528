"""Access to the CMS content-document store.

The store owns every record; this service only reads records and issues
partial updates. Two implementations share the :class:`ContentStore` contract:

* :class:`RestContentStore` talks to the CMS REST API
  (``/api/{collection}`` with ``{"data": ...}`` envelopes).
* :class:`InMemoryContentStore` keeps records in a dict, for local runs and tests.

Filters map a field either to a plain value (exact match) or to
``{"$eqi": value}`` (case-insensitive match).
"""

import copy
import logging
import threading
from typing import Any, Protocol

import httpx

from portfolio_backend.api.errors import NotFoundError, UpstreamFailure

log = logging.getLogger(__name__)

Filters = dict[str, Any]


class ContentStore(Protocol):
    def find_one(self, collection: str, document_id: str) -> dict | None: ...

    def find_many(self, collection: str, filters: Filters | None = None, limit: int | None = None) -> list[dict]: ...

    def update(self, collection: str, document_id: str, data: dict) -> dict: ...


def _matches(record: dict, filters: Filters) -> bool:
    for field, cond in filters.items():
        value = record.get(field)
        if isinstance(cond, dict) and "$eqi" in cond:
            expected = cond["$eqi"]
            if not isinstance(value, str) or not isinstance(expected, str):
                return False
            if value.casefold() != expected.casefold():
                return False
        elif value != cond:
            return False
    return True


class InMemoryContentStore:
    """Dict-backed store: ``{collection: {documentId: record}}``."""

    def __init__(self, seed: dict[str, list[dict]] | None = None):
        self._collections: dict[str, dict[str, dict]] = {}
        self._next_id = 1
        self._lock = threading.Lock()
        self.update_calls: list[tuple[str, str, dict]] = []
        for collection, records in (seed or {}).items():
            for record in records:
                self.add(collection, record)

    def add(self, collection: str, record: dict) -> dict:
        """Insert *record*; assigns ``id`` when missing. ``documentId`` is required."""
        with self._lock:
            stored = dict(record)
            stored.setdefault("id", self._next_id)
            self._next_id = max(self._next_id, int(stored["id"])) + 1
            self._collections.setdefault(collection, {})[stored["documentId"]] = stored
            return copy.deepcopy(stored)

    def find_one(self, collection: str, document_id: str) -> dict | None:
        with self._lock:
            record = self._collections.get(collection, {}).get(document_id)
            return copy.deepcopy(record) if record is not None else None

    def find_many(self, collection: str, filters: Filters | None = None, limit: int | None = None) -> list[dict]:
        with self._lock:
            records = [
                copy.deepcopy(r)
                for r in self._collections.get(collection, {}).values()
                if not filters or _matches(r, filters)
            ]
        return records[:limit] if limit is not None else records

    def update(self, collection: str, document_id: str, data: dict) -> dict:
        with self._lock:
            record = self._collections.get(collection, {}).get(document_id)
            if record is None:
                raise NotFoundError(f"{collection} {document_id} not found")
            record.update(data)
            self.update_calls.append((collection, document_id, dict(data)))
            return copy.deepcopy(record)


def _filter_params(filters: Filters | None) -> dict[str, str]:
    params: dict[str, str] = {}
    for field, cond in (filters or {}).items():
        if isinstance(cond, dict):
            for op, value in cond.items():
                params[f"filters[{field}][{op}]"] = str(value)
        else:
            params[f"filters[{field}][$eq]"] = str(cond)
    return params


class RestContentStore:
    """Content store backed by the CMS REST API."""

    def __init__(self, base_url: str, token: str | None = None, client: httpx.Client | None = None):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.Client(base_url=base_url.rstrip("/"), headers=headers, timeout=10.0)

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            log.warning("content store %s %s failed: %s", method, path, exc)
            raise UpstreamFailure(f"Content store request failed: {exc}") from exc

    @staticmethod
    def _data(resp: httpx.Response, method: str, path: str):
        if resp.status_code >= 400:
            log.info("content store returned %s for %s %s", resp.status_code, method, path)
            raise UpstreamFailure(f"Content store error: {resp.status_code}")
        try:
            return resp.json().get("data")
        except ValueError as exc:
            raise UpstreamFailure("Content store returned invalid JSON") from exc

    def find_one(self, collection: str, document_id: str) -> dict | None:
        path = f"/api/{collection}/{document_id}"
        resp = self._request("GET", path)
        if resp.status_code == 404:
            return None
        return self._data(resp, "GET", path)

    def find_many(self, collection: str, filters: Filters | None = None, limit: int | None = None) -> list[dict]:
        path = f"/api/{collection}"
        params = _filter_params(filters)
        if limit is not None:
            params["pagination[limit]"] = str(limit)
        resp = self._request("GET", path, params=params)
        return self._data(resp, "GET", path) or []

    def update(self, collection: str, document_id: str, data: dict) -> dict:
        path = f"/api/{collection}/{document_id}"
        resp = self._request("PUT", path, params={"status": "published"}, json={"data": data})
        if resp.status_code == 404:
            raise NotFoundError(f"{collection} {document_id} not found")
        return self._data(resp, "PUT", path)
