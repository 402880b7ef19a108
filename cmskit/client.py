"""Async HTTP client for the headless CMS API.

CmsClient wraps an aiohttp ClientSession, attaches the API key to every
request, decodes JSON responses into typed records and maps non-2xx answers
to CmsApiError. It is both the form definition source and the submission
transport used by FormSession.

Usage:
    >>> import asyncio
    >>> async def main():
    ...     async with CmsClient("https://cms.example.com/api", "key") as client:
    ...         page = await client.get_page("home")
    ...         return page.title
"""

import asyncio
import json
import logging
import os
from typing import Any, Dict, Mapping, Optional

import aiohttp

from cmskit.errors import CmsApiError, CmsConfigError, CmsConnectionError, CmsResponseError
from cmskit.schema import parse_form_definition, parse_page
from cmskit.types import (
    AgendaEvent,
    AgendaEventsParams,
    AgendaEventsResponse,
    FieldValue,
    FormDefinition,
    FormSubmitResponse,
    Page,
    Post,
    PostsResponse,
)


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

URL_ENV_VARS = ("CMS_API_URL", "NEXT_PUBLIC_CMS_API_URL")
KEY_ENV_VARS = ("CMS_API_KEY", "NEXT_PUBLIC_CMS_API_KEY")


class CmsClient:
    """Client for the CMS REST API.

    The client owns its aiohttp session unless one is passed in; use it as an
    async context manager or call ``close()`` when done.

    Attributes:
        base_url: API root without a trailing slash
        api_key: Key sent in the ``X-API-Key`` header
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def __aenter__(self) -> "CmsClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying session if this client created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-API-Key": self.api_key,
        }

    async def _request(
        self,
        method: str,
        endpoint: str,
        payload: Optional[Any] = None,
        params: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Raises:
            CmsApiError: On a non-2xx status
            CmsConnectionError: When the service cannot be reached
            CmsResponseError: When the body is not valid JSON
        """
        url = f"{self.base_url}{endpoint}"
        data = json.dumps(payload) if payload is not None else None
        logger.debug("%s %s", method, url)
        try:
            async with self._get_session().request(
                method,
                url,
                data=data,
                params=params or None,
                headers=self._headers(),
                timeout=self._timeout,
            ) as response:
                body = await response.text()
                if not 200 <= response.status < 300:
                    logger.debug("%s %s -> %s", method, url, response.status)
                    raise CmsApiError(response.status, body)
        except aiohttp.ClientError as exc:
            raise CmsConnectionError(f"Could not reach CMS at {url}: {exc}") from exc
        except asyncio.TimeoutError as exc:
            raise CmsConnectionError(f"Request to {url} timed out") from exc

        if not body:
            return None
        try:
            return json.loads(body)
        except ValueError as exc:
            raise CmsResponseError(f"CMS returned invalid JSON for {endpoint}: {exc}") from exc

    async def get_page(self, slug: str) -> Page:
        """Get a page by its slug, including all its components with content."""
        return parse_page(await self._request("GET", f"/pages/{slug}"))

    async def get_form(self, slug: str) -> FormDefinition:
        """Get a form definition by its slug."""
        return parse_form_definition(await self._request("GET", f"/forms/{slug}"))

    async def submit_form(self, slug: str, values: Mapping[str, FieldValue]) -> FormSubmitResponse:
        """Submit form values."""
        data = await self._request("POST", f"/forms/{slug}/submit", payload=dict(values))
        if data is None:
            return FormSubmitResponse()
        if not isinstance(data, dict):
            raise CmsResponseError(f"Unexpected submit response for form '{slug}'")
        return FormSubmitResponse.from_dict(data)

    async def get_agenda_events(self, params: Optional[AgendaEventsParams] = None) -> AgendaEventsResponse:
        """Get a page of agenda events.

        By default the service returns published events ordered by start time.

        Examples:
            Upcoming workshops only::

                await client.get_agenda_events(AgendaEventsParams(upcoming=True, category="workshop"))
        """
        query = (params or AgendaEventsParams()).to_query()
        data = await self._request("GET", "/agenda", params=query)
        return AgendaEventsResponse.from_dict(self._expect_object(data, "/agenda"))

    async def get_agenda_event(self, slug: str) -> AgendaEvent:
        """Get a single agenda event by its slug."""
        data = await self._request("GET", f"/agenda/{slug}")
        return AgendaEvent.from_dict(self._expect_object(data, f"/agenda/{slug}"))

    async def get_posts(self, limit: Optional[int] = None) -> PostsResponse:
        """Get a page of published posts."""
        query = {"limit": str(limit)} if limit is not None else None
        data = await self._request("GET", "/posts", params=query)
        return PostsResponse.from_dict(self._expect_object(data, "/posts"))

    async def get_post(self, slug: str) -> Post:
        """Get a single post by its slug."""
        data = await self._request("GET", f"/posts/{slug}")
        return Post.from_dict(self._expect_object(data, f"/posts/{slug}"))

    async def sync_structure(self, structure: Mapping[str, Any]) -> Dict[str, Any]:
        """Push local component and page declarations to the server.

        Args:
            structure: Mapping with ``components`` and ``pages`` keys, as in cms-config.json

        Returns:
            The server's answer, usually ``{"success": True, "message": ...}``
        """
        payload = {
            "components": structure.get("components", {}),
            "pages": structure.get("pages", []),
        }
        data = await self._request("POST", "/sync-structure", payload=payload)
        return data if isinstance(data, dict) else {"success": True}

    @staticmethod
    def _expect_object(data: Any, endpoint: str) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise CmsResponseError(f"Expected a JSON object from {endpoint}")
        return data


def create_cms_client(
    base_url: Optional[str] = None,
    api_key: Optional[str] = None,
    **kwargs: Any,
) -> CmsClient:
    """Create a CMS client.

    Missing arguments are read from ``CMS_API_URL`` / ``NEXT_PUBLIC_CMS_API_URL``
    and ``CMS_API_KEY`` / ``NEXT_PUBLIC_CMS_API_KEY``.

    Raises:
        CmsConfigError: If no URL or key can be found
    """
    base_url = base_url or next((os.environ[v] for v in URL_ENV_VARS if os.environ.get(v)), None)
    api_key = api_key or next((os.environ[v] for v in KEY_ENV_VARS if os.environ.get(v)), None)
    if not base_url or not api_key:
        raise CmsConfigError(
            "CMS config not found. Either pass base_url and api_key to create_cms_client() "
            "or set environment variables: CMS_API_URL and CMS_API_KEY "
            "(or NEXT_PUBLIC_ prefixed versions)."
        )
    return CmsClient(base_url, api_key, **kwargs)


__all__ = [
    "CmsClient",
    "create_cms_client",
    "DEFAULT_TIMEOUT",
]
