"""Base API connector with retry and authentication.

Provides common functionality for HTTP connectors including:
- HTTP client with connection pooling
- Exponential backoff retry logic
- Authentication header injection
"""

from __future__ import annotations

import base64
import time
from typing import Any

import httpx

from ...config import HTTP_MAX_RETRIES, HTTP_RETRY_DELAY_SECONDS
from ..base import BaseConnector, ConnectionFailedError, QueryFailedError
from ..models import AuthType, RestApiConnectionConfig

# Upper bound on a server-requested Retry-After wait
MAX_RETRY_AFTER_SECONDS = 60


class ApiRequestError(Exception):
    """Non-retryable or exhausted HTTP failure, before wrapping."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class BaseApiConnector(BaseConnector):
    """Base class for HTTP-based connectors.

    There is no persistent connection: connect() validates the target and
    opens a pooled client, and every query is one or more HTTP requests.

    Provides:
    - HTTP client with configurable timeout and SSL verification
    - Exponential backoff retry on 5xx, connect errors and timeouts
    - Retry-After handling for 429 responses
    - Authentication header injection (basic, bearer, api_key)
    """

    config_model = RestApiConnectionConfig
    config: RestApiConnectionConfig

    def __init__(
        self,
        config: RestApiConnectionConfig | dict[str, Any] | None = None,
        connector_id: str | None = None,
        name: str | None = None,
        transport: httpx.BaseTransport | None = None,
        max_retries: int = HTTP_MAX_RETRIES,
        retry_delay: float = HTTP_RETRY_DELAY_SECONDS,
    ) -> None:
        """Initialize API connector.

        Args:
            config: REST connection configuration
            connector_id: Identifier used in log context
            name: Human-readable name
            transport: Optional httpx transport (e.g. ``httpx.MockTransport``)
            max_retries: Retry attempts after the first request
            retry_delay: Initial backoff delay in seconds
        """
        super().__init__(config, connector_id, name)
        self._client: httpx.Client | None = None
        self._transport = transport
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    def connect(self) -> None:
        """Validate the target and open the HTTP client.

        Raises:
            ConnectionFailedError: If base_url or endpoint is missing
        """
        if self._connected:
            return

        if not self.config.base_url:
            raise ConnectionFailedError(
                "Failed to connect to REST_API: base_url is required",
                self.source_kind,
            )
        if not self.config.endpoint:
            raise ConnectionFailedError(
                "Failed to connect to REST_API: endpoint is required",
                self.source_kind,
            )

        self._client = httpx.Client(
            base_url=self.config.base_url,
            timeout=httpx.Timeout(self.config.timeout, connect=10.0),
            verify=self.config.verify_ssl,
            follow_redirects=True,
            transport=self._transport,
        )
        self._connected = True
        self._log("info", f"Connected to API: {self.config.base_url}")

    def disconnect(self) -> None:
        """Close the HTTP client. Idempotent."""
        if self._client is not None:
            self._client.close()
            self._client = None
        if self._connected:
            self._log("info", "Disconnected")
        self._connected = False

    def _get_auth_headers(self) -> dict[str, str]:
        """Get authentication headers based on auth_type.

        Returns:
            Dictionary of headers to add to requests
        """
        auth = self.config.auth_config
        headers: dict[str, str] = {}
        if auth is None:
            return headers

        auth_type = self.config.auth_type
        if auth_type == AuthType.API_KEY:
            if auth.api_key:
                headers[auth.api_key_header] = auth.api_key

        elif auth_type == AuthType.BASIC:
            username = auth.username or ""
            password = auth.password or ""
            credentials = base64.b64encode(f"{username}:{password}".encode()).decode()
            headers["Authorization"] = f"Basic {credentials}"

        elif auth_type == AuthType.BEARER:
            if auth.token:
                headers["Authorization"] = f"Bearer {auth.token}"

        return headers

    def _retry_after_seconds(self, response: httpx.Response, attempt: int) -> float:
        retry_after = response.headers.get("Retry-After", "")
        if retry_after.isdigit():
            return min(float(retry_after), MAX_RETRY_AFTER_SECONDS)
        return self._retry_delay * (2**attempt)

    def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Make an HTTP request with retry logic.

        Args:
            method: HTTP method (GET or POST)
            endpoint: API endpoint path
            params: Query parameters
            headers: Additional headers

        Returns:
            HTTP response

        Raises:
            NotConnectedError: If connect() has not been called
            QueryFailedError: If the request fails after retries or is rejected
        """
        self._require_connected()
        assert self._client is not None

        request_headers = dict(self.config.headers)
        request_headers.update(self._get_auth_headers())
        if headers:
            request_headers.update(headers)

        last_error: Exception | None = None

        for attempt in range(self._max_retries + 1):
            delay = self._retry_delay * (2**attempt)
            try:
                response = self._client.request(
                    method=method,
                    url=endpoint,
                    params=params,
                    headers=request_headers,
                )

                if response.status_code == 429:
                    delay = self._retry_after_seconds(response, attempt)
                    raise ApiRequestError("Rate limit exceeded", 429)

                # Server errors are retried
                if response.status_code >= 500:
                    raise ApiRequestError(
                        f"Server error: {response.status_code}", response.status_code
                    )

                if response.status_code >= 400:
                    raise QueryFailedError(
                        f"Query failed on REST_API: HTTP {response.status_code} - "
                        f"{response.text[:200]}",
                        self.source_kind,
                    )

                return response

            except ApiRequestError as e:
                last_error = e
            except (httpx.ConnectError, httpx.TimeoutException) as e:
                last_error = e
            except httpx.HTTPError as e:
                raise QueryFailedError.wrap(self.source_kind, e) from e

            if attempt < self._max_retries:
                self._log(
                    "warning",
                    f"Request failed, retrying in {delay}s: {last_error}",
                    attempt=attempt + 1,
                )
                time.sleep(delay)

        raise QueryFailedError(
            f"Query failed on REST_API: request failed after "
            f"{self._max_retries + 1} attempts: {last_error}",
            self.source_kind,
            last_error,
        )

    def _get_json(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send the configured method and decode the JSON body.

        Raises:
            QueryFailedError: On HTTP failure or a body that is not JSON
        """
        response = self._request(self.config.method, endpoint, params=params)
        try:
            return response.json()
        except ValueError as e:
            raise QueryFailedError(
                f"Query failed on REST_API: response is not valid JSON ({e})",
                self.source_kind,
                e,
            ) from e
