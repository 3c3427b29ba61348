# edutube_sync/courses_api/client.py
#
#
# Imports
import json
import time
from typing import Optional, Dict, Any, List, Mapping, Union
#
# 3rd-party Libraries
import httpx
from loguru import logger
from pydantic import ValidationError
#
# Local Imports
from .schemas import CourseRecord
from .exceptions import (
    APIResponseError, NetworkUnavailable, NotFound, Unauthorized, ValidationFailed
)
from .utils import course_to_payload, partial_to_payload, remember_category_names
from ..Metrics.metrics_logger import log_counter, log_gauge, log_histogram
#
########################################################################################################################
#
# Functions:

# Sent on every listing so intermediaries never hand back a stale catalog
NO_STORE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


class CourseStoreClient:
    """
    Async wrapper around the course store's REST collection.

    No call is retried. Writes need a credential, either the client's own `token`
    or a per-call override; without one `Unauthorized` is raised before any request.
    """
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        courses_endpoint: str = "/api/courses",
    ):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self.courses_endpoint = "/" + courses_endpoint.strip('/')
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        # category id -> name, learned from embedded categories in responses and outgoing records
        self.category_names: Dict[str, str] = {}

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "CourseStoreClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _require_token(self, token: Optional[str]) -> str:
        credential = token or self.token
        if not credential:
            raise Unauthorized("A credential is required for write operations on the course store.")
        return credential

    def _course_url(self, course_id: Optional[str] = None) -> str:
        if course_id is None:
            return self.courses_endpoint
        return f"{self.courses_endpoint}/{course_id}"

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        token: Optional[str] = None,
    ) -> Any:
        client = await self._get_client()
        url = f"{self.base_url}{endpoint}"
        request_headers = dict(headers or {})
        if token:
            request_headers["Authorization"] = f"Bearer {token}"

        start_time = time.perf_counter()
        status = "error"
        response = None
        try:
            response = await client.request(method, endpoint, json=json_body, params=params, headers=request_headers)
            status = str(response.status_code)
            response.raise_for_status()
            if not response.content:
                return {}
            return response.json()
        except httpx.HTTPStatusError as e:
            error_detail = e.response.reason_phrase or str(e)
            response_data = None
            try:
                response_data = e.response.json()
                if isinstance(response_data, dict) and response_data.get("msg"):
                    error_detail = str(response_data["msg"])
            except ValueError:
                pass  # Body was not JSON, keep the reason phrase

            status_code = e.response.status_code
            if status_code in (401, 403):
                raise Unauthorized(f"Authorization failed ({status_code}): {error_detail}") from e
            if status_code == 404:
                raise NotFound(f"Not found: {error_detail}") from e
            if status_code in (400, 422):
                body = response_data if isinstance(response_data, dict) else {}
                raise ValidationFailed(
                    f"Validation Error: {error_detail}",
                    required=body.get("required"),
                    received=body.get("received"),
                    response_data=body,
                ) from e
            raise APIResponseError(status_code, error_detail, response_data=response_data) from e
        except httpx.RequestError as e:  # Covers ConnectError, TimeoutException, etc.
            raise NetworkUnavailable(f"Connection error to {url}: {e}") from e
        except json.JSONDecodeError as e:
            raise APIResponseError(
                response.status_code, "Failed to decode JSON response", response_data={"raw_text": response.text}
            ) from e
        finally:
            elapsed = time.perf_counter() - start_time
            log_histogram(
                "course_store_request_duration_seconds", elapsed,
                labels={"method": method, "status": status},
            )

    def _parse_course(self, raw: Any) -> CourseRecord:
        if not isinstance(raw, Mapping):
            raise APIResponseError(200, f"Expected a course object, got {type(raw).__name__}", response_data={"raw": raw})
        remember_category_names(raw, self.category_names)
        try:
            return CourseRecord.model_validate(raw, context={"category_names": self.category_names})
        except ValidationError as e:
            raise APIResponseError(200, f"Malformed course in response: {e}", response_data=dict(raw)) from e

    def _remember_outgoing(self, record: Union[CourseRecord, Mapping[str, Any]]):
        remember_category_names([record], self.category_names)

    async def list_courses(self) -> List[CourseRecord]:
        """Fetches the whole catalog, bypassing every cache on the way."""
        params = {"_t": int(time.time() * 1000)}
        response_data = await self._request("GET", self._course_url(), params=params, headers=NO_STORE_HEADERS)
        if not isinstance(response_data, list):
            raise APIResponseError(200, "Course listing is not a list", response_data={"raw": response_data})
        remember_category_names(response_data, self.category_names)
        courses = [self._parse_course(raw) for raw in response_data]
        log_counter("course_store_list_total")
        log_gauge("course_store_listing_size", len(courses))
        logger.debug(f"Listed {len(courses)} courses from the course store.")
        return courses

    async def get_course(self, course_id: str) -> CourseRecord:
        try:
            response_data = await self._request("GET", self._course_url(course_id))
        except NotFound as e:
            raise NotFound(f"Course {course_id} not found", course_id=course_id) from e
        return self._parse_course(response_data)

    async def create_course(self, record: CourseRecord, token: Optional[str] = None) -> CourseRecord:
        """Creates `record`; the returned record carries the store-assigned id."""
        credential = self._require_token(token)
        self._remember_outgoing(record)
        response_data = await self._request(
            "POST", self._course_url(), json_body=course_to_payload(record), token=credential
        )
        created = self._parse_course(response_data)
        if not created.id:
            raise APIResponseError(200, "Create response carried no course id", response_data=response_data)
        logger.info(f"Created course '{created.title}' with id {created.id}.")
        return created

    async def update_course(
        self,
        course_id: str,
        partial: Union[CourseRecord, Mapping[str, Any]],
        token: Optional[str] = None,
    ) -> CourseRecord:
        credential = self._require_token(token)
        self._remember_outgoing(partial)
        try:
            response_data = await self._request(
                "PUT", self._course_url(course_id), json_body=partial_to_payload(partial), token=credential
            )
        except NotFound as e:
            raise NotFound(f"Course {course_id} not found", course_id=course_id) from e
        updated = self._parse_course(response_data)
        logger.info(f"Updated course {course_id}.")
        return updated

    async def delete_course(self, course_id: str, token: Optional[str] = None) -> bool:
        credential = self._require_token(token)
        try:
            response_data = await self._request("DELETE", self._course_url(course_id), token=credential)
        except NotFound as e:
            raise NotFound(f"Course {course_id} not found", course_id=course_id) from e
        logger.info(f"Deleted course {course_id}: {response_data.get('msg') if isinstance(response_data, dict) else ''}")
        return True

    async def count_courses(self) -> int:
        return len(await self.list_courses())

#
# End of client.py
########################################################################################################################
