"""
HTTP client for a remote assessment service.

Used when assessments are owned by a separate service
(assessment_service.url). Implements the AssessmentService protocol over a
small JSON REST API:

    GET    /assessments/{id}
    POST   /assessments
    PATCH  /assessments/{id}                  {status, completed_at}
    POST   /assessments/{id}/link             {linked_assessment_id}
    GET    /assessments/{id}/items?function_id=PR
    POST   /assessments/{id}/items            {items: [...]}
    GET    /items/{id}
    PATCH  /items/{id}                        {status, notes}

Every request has a timeout and is retried once on a connection error or
timeout before AssessmentServiceError is raised.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from datetime import datetime
from typing import Any
from urllib.parse import urljoin

import requests

from csfvendor.errors import AssessmentServiceError, NotFoundError
from csfvendor.storage.models import (
    Assessment,
    AssessmentItem,
    AssessmentStatus,
    ItemStatus,
    parse_enum,
)

logger = logging.getLogger(__name__)

# Attempts per request (one retry)
REQUEST_ATTEMPTS = 2

# Delay before the retry in seconds
RETRY_DELAY = 0.5


class AssessmentServiceClient:
    """
    Client for the remote assessment service.

    Example:
        client = AssessmentServiceClient("https://assessments.internal", timeout=5)
        assessment = client.get_assessment(assessment_id)
        items = client.list_items(assessment_id, function_id="PR")
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Service root URL.
            api_key: Optional bearer token for the service.
            timeout: Per-request timeout in seconds.
            session: Optional preconfigured session.
        """
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
        )
        if api_key:
            self._session.headers["Authorization"] = f"Bearer {api_key}"

    def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        """
        Make an API request to the assessment service.

        Returns:
            Decoded JSON body, or None for an empty response.

        Raises:
            NotFoundError: If the service answers 404.
            AssessmentServiceError: On other HTTP errors, or when the service
                is unreachable after the retry.
        """
        url = urljoin(self.base_url, endpoint.lstrip("/"))
        last_error: Exception | None = None

        for attempt in range(REQUEST_ATTEMPTS):
            start_time = time.time()
            try:
                response = self._session.request(
                    method, url, params=params, json=json_body, timeout=self.timeout
                )
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                last_error = e
                if attempt < REQUEST_ATTEMPTS - 1:
                    logger.warning(
                        f"Assessment service unreachable, retrying "
                        f"(attempt {attempt + 1}/{REQUEST_ATTEMPTS}): {e}"
                    )
                    time.sleep(RETRY_DELAY)
                continue

            duration_ms = (time.time() - start_time) * 1000
            self._log_api_call(method, endpoint, response.status_code, duration_ms)

            if response.status_code == 404:
                raise NotFoundError(f"Not found: {endpoint}")

            if response.status_code >= 400:
                raise AssessmentServiceError(
                    f"Assessment service returned {response.status_code} "
                    f"for {method} {endpoint}"
                )

            if not response.content:
                return None
            try:
                return response.json()
            except ValueError as e:
                raise AssessmentServiceError(
                    f"Assessment service returned invalid JSON for {method} {endpoint}"
                ) from e

        raise AssessmentServiceError(
            f"Assessment service unavailable: {last_error}"
        ) from last_error

    def _log_api_call(
        self,
        method: str,
        endpoint: str,
        status_code: int | None = None,
        duration_ms: float | None = None,
    ) -> None:
        msg = f"API call: {method} {endpoint}"
        if status_code is not None:
            msg += f" -> {status_code}"
        if duration_ms is not None:
            msg += f" ({duration_ms:.0f}ms)"
        logger.debug(msg)

    # -------------------------------------------------------------------------
    # AssessmentService
    # -------------------------------------------------------------------------

    def get_assessment(self, assessment_id: str) -> Assessment | None:
        try:
            data = self._request("GET", f"/assessments/{assessment_id}")
        except NotFoundError:
            return None
        return Assessment.from_dict(data)

    def list_items(
        self, assessment_id: str, function_id: str | None = None
    ) -> list[AssessmentItem]:
        params = {"function_id": function_id} if function_id else None
        data = self._request("GET", f"/assessments/{assessment_id}/items", params=params)
        rows = data.get("items", []) if isinstance(data, dict) else data or []
        return [AssessmentItem.from_dict(row) for row in rows]

    def get_item(self, item_id: str) -> AssessmentItem | None:
        try:
            data = self._request("GET", f"/items/{item_id}")
        except NotFoundError:
            return None
        return AssessmentItem.from_dict(data)

    def create_assessment(self, assessment: Assessment) -> Assessment:
        data = self._request("POST", "/assessments", json_body=assessment.to_dict())
        return Assessment.from_dict(data) if data else assessment

    def create_items(self, items: Iterable[AssessmentItem]) -> list[AssessmentItem]:
        items = list(items)
        if not items:
            return []
        assessment_id = items[0].assessment_id
        self._request(
            "POST",
            f"/assessments/{assessment_id}/items",
            json_body={"items": [item.to_dict() for item in items]},
        )
        return items

    def update_item(
        self,
        item_id: str,
        status: ItemStatus | str,
        notes: str | None = None,
    ) -> AssessmentItem:
        status = parse_enum(ItemStatus, status, "status")
        body: dict[str, Any] = {"status": status.value}
        if notes is not None:
            body["notes"] = notes
        data = self._request("PATCH", f"/items/{item_id}", json_body=body)
        return AssessmentItem.from_dict(data)

    def update_assessment_status(
        self,
        assessment_id: str,
        status: AssessmentStatus | str,
        completed_at: datetime | None = None,
    ) -> Assessment:
        status = parse_enum(AssessmentStatus, status, "status")
        data = self._request(
            "PATCH",
            f"/assessments/{assessment_id}",
            json_body={
                "status": status.value,
                "completed_at": completed_at.isoformat() if completed_at else None,
            },
        )
        return Assessment.from_dict(data)

    def link_assessments(self, assessment_id: str, linked_assessment_id: str) -> None:
        self._request(
            "POST",
            f"/assessments/{assessment_id}/link",
            json_body={"linked_assessment_id": linked_assessment_id},
        )
