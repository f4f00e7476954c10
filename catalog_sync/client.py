#!/usr/bin/env python3
"""REST client for the classification catalog service.

API reference (all paths relative to ``{server}/api/v1.0``):
- Taxonomy:        GET   /taxonomy/tag-categories
                   GET   /taxonomy/free-text-attributes
- Column tags:     GET   /columns/{id}/tags
                   PUT   /columns/{id}/tags                 body {TagIds}
- Bulk tags:       PATCH /columns/bulk-classification       body {ColumnIdentifiers, TagIds, FreeTextAttributes}
- Columns:         GET   /columns?instanceId=&databaseName=&skip=&take=
- Scans:           POST  /instances/{id}/scan
                   POST  /instances/{id}/databases/{db}/scan   -> 202 + Location status URL
- Scan status:     GET   <status-url>                       -> {"status": ...}
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional
from urllib.parse import quote

import requests

from .config import retry
from .errors import CatalogAuthenticationError, CatalogRequestError
from .models import ClassifiedColumn, FreeTextAttribute, TagCategory, TagId

logger = logging.getLogger("catalog_sync.client")

API_PREFIX = "/api/v1.0"
COLUMN_PAGE_SIZE = 1000


class CatalogClient:
    """Thin wrapper over the catalog REST API.

    Transient failures (429/5xx, connection resets) of idempotent requests
    are retried with exponential back-off. Anything else is raised as
    ``CatalogRequestError`` (``CatalogAuthenticationError`` for 401).
    """

    def __init__(
        self,
        server_url: str,
        token_provider: Callable[[], str],
        timeout: int = 60,
        http: Optional[requests.Session] = None,
    ):
        self.server_url = server_url.rstrip("/")
        self.base_url = f"{self.server_url}{API_PREFIX}"
        self._token_provider = token_provider
        self.timeout = timeout
        self._http = http or requests.Session()

    # ---------------------------------------------------------------------
    # REST helpers
    # ---------------------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token_provider()}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}{path}"

    def _send_once(self, method: str, url: str, **kwargs) -> requests.Response:
        return self._http.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)

    @retry(max_attempts=3)
    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        return self._send_once(method, url, **kwargs)

    def _request(
        self,
        method: str,
        path: str,
        expected: Iterable[int] = (200,),
        idempotent: bool = True,
        **kwargs,
    ) -> requests.Response:
        """Send one request; only ``idempotent`` requests are retried on transient failures."""
        url = self._url(path)
        send = self._send if idempotent else self._send_once
        try:
            resp = send(method, url, **kwargs)
        except requests.RequestException as exc:
            raise CatalogRequestError(f"{method} {url} failed: {exc}") from exc

        if resp.status_code == 401:
            raise CatalogAuthenticationError(self.server_url)
        if resp.status_code not in expected:
            logger.error("Catalog API %s %s returned %s: %s", method, url, resp.status_code, resp.text[:500])
            raise CatalogRequestError(
                f"{method} {url} returned HTTP {resp.status_code}",
                status_code=resp.status_code,
                body=resp.text,
            )
        return resp

    # ---------------------------------------------------------------------
    # Taxonomy
    # ---------------------------------------------------------------------

    def get_tag_categories(self) -> List[TagCategory]:
        resp = self._request("GET", "/taxonomy/tag-categories")
        return [TagCategory.from_api(item) for item in resp.json()]

    def get_free_text_attributes(self) -> List[FreeTextAttribute]:
        resp = self._request("GET", "/taxonomy/free-text-attributes")
        return [FreeTextAttribute.from_api(item) for item in resp.json()]

    # ---------------------------------------------------------------------
    # Column tags
    # ---------------------------------------------------------------------

    def get_column_tags(self, column_id: str) -> FrozenSet[TagId]:
        resp = self._request("GET", f"/columns/{quote(str(column_id), safe='')}/tags")
        return frozenset(tag["id"] for tag in resp.json())

    def set_column_tags(self, column_id: str, tag_ids: Iterable[TagId]) -> None:
        """Replace the full tag set of one column."""
        self._request(
            "PUT",
            f"/columns/{quote(str(column_id), safe='')}/tags",
            expected=(200, 204),
            json={"TagIds": sorted(tag_ids)},
        )

    def bulk_classify(
        self,
        column_identifiers: List[Dict[str, str]],
        tag_ids: Iterable[TagId],
    ) -> None:
        """Replace the tag set of every identified column in one request."""
        self._request(
            "PATCH",
            "/columns/bulk-classification",
            expected=(200, 202, 204),
            json={
                "ColumnIdentifiers": column_identifiers,
                "TagIds": sorted(tag_ids),
                "FreeTextAttributes": {},
            },
        )

    # ---------------------------------------------------------------------
    # Columns
    # ---------------------------------------------------------------------

    def get_columns(
        self,
        instance_id: str,
        database_name: str,
        page_size: int = COLUMN_PAGE_SIZE,
    ) -> List[ClassifiedColumn]:
        """Fetch every catalog column of one database, in catalog order."""
        columns: List[ClassifiedColumn] = []
        skip = 0
        while True:
            resp = self._request(
                "GET",
                "/columns",
                params={
                    "instanceId": instance_id,
                    "databaseName": database_name,
                    "skip": skip,
                    "take": page_size,
                },
            )
            page = resp.json()
            if isinstance(page, dict):
                page = page.get("columns", [])
            columns.extend(ClassifiedColumn.from_api(item) for item in page)
            if len(page) < page_size:
                break
            skip += page_size
        logger.debug("Fetched %d columns for %s/%s", len(columns), instance_id, database_name)
        return columns

    # ---------------------------------------------------------------------
    # Scans (asynchronous operations)
    # ---------------------------------------------------------------------

    def _start_operation(self, path: str) -> str:
        # a scan trigger is not idempotent; never resend it
        resp = self._request("POST", path, expected=(200, 201, 202), idempotent=False)
        if resp.status_code != 202:
            raise CatalogRequestError(
                f"POST {self._url(path)} returned HTTP {resp.status_code}; expected 202 Accepted",
                status_code=resp.status_code,
                body=resp.text,
            )
        handle = resp.headers.get("Location") or resp.headers.get("Operation-Location")
        if not handle:
            raise CatalogRequestError(f"POST {self._url(path)} was accepted but returned no status URL")
        return handle

    def start_instance_scan(self, instance_id: str) -> str:
        return self._start_operation(f"/instances/{quote(str(instance_id), safe='')}/scan")

    def start_database_scan(self, instance_id: str, database_name: str) -> str:
        return self._start_operation(
            f"/instances/{quote(str(instance_id), safe='')}"
            f"/databases/{quote(database_name, safe='')}/scan"
        )

    def get_operation_status(self, handle: str) -> str:
        resp = self._request("GET", handle)
        data = resp.json()
        if not isinstance(data, dict):
            logger.warning("Unexpected status body from %s: %r", handle, data)
            return "Unknown"
        return str(data.get("status", "Unknown"))
