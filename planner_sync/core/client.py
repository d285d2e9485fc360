"""Authenticated HTTP client shared by the storage provider adapters."""

import asyncio
import logging
from typing import Any

import requests

from .errors import (
    AuthenticationExpiredError,
    NotAuthenticatedError,
    ProviderUnavailableError,
    ResourceNotFoundError,
)
from .tokens import TokenStore

logger = logging.getLogger(__name__)


class ProviderClient:
    """HTTP client for one provider's REST API with bearer-token authentication.

    Blocking ``requests`` calls run in a worker thread so adapters can await
    them. Status handling happens back on the event loop: 401 purges the
    stored credential, 404 becomes ResourceNotFoundError and any other
    failure becomes ProviderUnavailableError.
    """

    def __init__(
        self,
        provider: str,
        token_store: TokenStore,
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize client.

        Args:
            provider: Provider identifier the token belongs to
            token_store: Source of the bearer token
            session: requests session (a new one if not provided)
            timeout: Per-request transport timeout in seconds
        """
        self.provider = provider
        self.token_store = token_store
        self.session = session or requests.Session()
        self.timeout = timeout

    def _get_headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        """Build request headers, attaching the current bearer token.

        Raises:
            NotAuthenticatedError: No valid credential is stored
        """
        credential = self.token_store.load(self.provider)
        if credential is None:
            raise NotAuthenticatedError(self.provider)

        headers = {
            "Authorization": f"Bearer {credential.token}",
            "Accept": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    def _send(self, method: str, url: str, headers: dict[str, str], **kwargs: Any) -> requests.Response:
        """Perform the blocking request (runs in a worker thread)."""
        try:
            return self.session.request(
                method=method,
                url=url,
                headers=headers,
                timeout=self.timeout,
                **kwargs,
            )
        except requests.RequestException as e:
            raise ProviderUnavailableError(f"{self.provider} request failed: {e}") from e

    async def request(
        self,
        method: str,
        url: str,
        params: dict[str, str] | None = None,
        json_data: dict[str, Any] | None = None,
        data: bytes | None = None,
        files: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> requests.Response:
        """Make an authenticated request to the provider API.

        Args:
            method: HTTP method
            url: Absolute URL
            params: Optional query parameters
            json_data: Optional JSON body
            data: Optional raw body
            files: Optional multipart form fields
            headers: Extra headers (e.g. Content-Type for raw bodies)

        Returns:
            Successful response

        Raises:
            NotAuthenticatedError: No stored credential
            AuthenticationExpiredError: Provider answered 401 (credential purged)
            ResourceNotFoundError: Provider answered 404
            ProviderUnavailableError: Any other failure
        """
        request_headers = self._get_headers(headers)
        kwargs: dict[str, Any] = {}
        if params:
            kwargs["params"] = params
        if json_data is not None:
            kwargs["json"] = json_data
        if data is not None:
            kwargs["data"] = data
        if files is not None:
            kwargs["files"] = files

        logger.debug("%s %s %s", self.provider, method, url)
        response = await asyncio.to_thread(self._send, method, url, request_headers, **kwargs)

        if response.status_code == 401:
            logger.warning("%s rejected the access token, clearing stored credential", self.provider)
            self.token_store.clear(self.provider)
            raise AuthenticationExpiredError(self.provider)

        if response.status_code == 404:
            raise ResourceNotFoundError(f"{self.provider}: not found: {url}", 404, response)

        if response.status_code >= 400:
            error_msg = f"{self.provider} API error {response.status_code}: {response.text[:500]}"
            raise ProviderUnavailableError(error_msg, response.status_code, response)

        return response

    async def get_json(self, url: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        """Make a GET request and parse the JSON body."""
        response = await self.request("GET", url, params=params)
        return self.parse_json(response)

    async def send_json(
        self,
        method: str,
        url: str,
        json_data: dict[str, Any],
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Make a request with a JSON body and parse the JSON reply."""
        response = await self.request(method, url, params=params, json_data=json_data)
        return self.parse_json(response)

    async def get_content(self, url: str, params: dict[str, str] | None = None) -> bytes:
        """Make a GET request and return the raw body."""
        response = await self.request("GET", url, params=params)
        return response.content

    def parse_json(self, response: requests.Response) -> dict[str, Any]:
        # Handle empty responses
        if not response.content:
            return {}
        try:
            return response.json()  # type: ignore[no-any-return]
        except ValueError as e:
            raise ProviderUnavailableError(
                f"{self.provider} returned invalid JSON", response.status_code, response
            ) from e
