"""
GitHub API Client - Low-level HTTP client for the GitHub API.

This handles the raw HTTP communication with GitHub: authentication headers,
per-request timeouts, cancellation of in-flight requests, and mapping of HTTP
failures onto the error taxonomy. The REST and GraphQL adapters use it to
implement the IssueSourcePort.
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Optional

import requests

from ...core.cancellation import CancellationToken
from ...core.exceptions import (
    AuthenticationError,
    CancelledError,
    NotFoundError,
    RateLimitError,
    TransientError,
)
from ...core.ports.config_provider import DEFAULT_API_URL


class GitHubApiClient:
    """
    Low-level GitHub API client.

    One instance owns one ``requests.Session``; instances are never shared
    between repositories' orchestrators implicitly.
    """

    API_VERSION = "2022-11-28"
    ACCEPT = "application/vnd.github+json"

    # How often a waiting caller re-checks its cancellation token
    CANCEL_POLL_INTERVAL = 0.05

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        max_workers: int = 2,
    ):
        """
        Initialize the GitHub client.

        Args:
            token: Bearer token (PAT, app token or `gh auth token` output)
            base_url: API root (e.g., https://api.github.com)
            timeout: Per-request deadline in seconds
            session: Optional pre-built session (tests)
            max_workers: Threads used to run requests off the caller's thread
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.logger = logging.getLogger("GitHubApiClient")

        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": self.ACCEPT,
            "X-GitHub-Api-Version": self.API_VERSION,
            "User-Agent": "issuemirror",
        }

        self._session = session or requests.Session()
        self._session.headers.update(self.headers)

        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="github-http",
        )

    # -------------------------------------------------------------------------
    # Core Request Methods
    # -------------------------------------------------------------------------

    def request(
        self,
        method: str,
        endpoint: str,
        cancel_token: Optional[CancellationToken] = None,
        **kwargs: Any,
    ) -> requests.Response:
        """
        Make an authenticated request to the GitHub API.

        Args:
            method: HTTP method (GET, POST)
            endpoint: API path (e.g., 'repos/acme/widgets/issues') or an
                absolute URL on the same host (pagination links)
            cancel_token: Aborts the wait for the response when cancelled
            **kwargs: Additional arguments for requests

        Returns:
            The successful response

        Raises:
            AuthenticationError: 401, or 403 that is not a rate limit
            NotFoundError: 404
            RateLimitError: 429, or 403 with exhausted rate limit
            TransientError: Any other failure, including timeouts
            CancelledError: The token was cancelled before a response arrived
        """
        url = self.url_for(endpoint)
        kwargs.setdefault("timeout", self.timeout)

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        self.logger.debug(f"{method} {url} params={kwargs.get('params')}")
        response = self._send(method, url, cancel_token, kwargs)
        return self._handle_response(response, endpoint)

    def get(
        self,
        endpoint: str,
        cancel_token: Optional[CancellationToken] = None,
        **kwargs: Any,
    ) -> requests.Response:
        """GET request."""
        return self.request("GET", endpoint, cancel_token, **kwargs)

    def post(
        self,
        endpoint: str,
        json: Optional[dict] = None,
        cancel_token: Optional[CancellationToken] = None,
        **kwargs: Any,
    ) -> requests.Response:
        """POST request (GraphQL queries are POSTs but never mutate)."""
        return self.request("POST", endpoint, cancel_token, json=json, **kwargs)

    def decode(self, response: requests.Response) -> Any:
        """Decode a JSON body; an undecodable body is a transient failure."""
        try:
            return response.json()
        except ValueError as e:
            raise TransientError(
                f"Invalid JSON from {response.url}: {e}",
                cause=e,
                status_code=response.status_code,
            )

    def url_for(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def is_same_origin(self, url: str) -> bool:
        """True if ``url`` points at the configured API host."""
        return url == self.base_url or url.startswith(self.base_url + "/")

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _send(
        self,
        method: str,
        url: str,
        cancel_token: Optional[CancellationToken],
        kwargs: dict[str, Any],
    ) -> requests.Response:
        """Run the request on a worker thread so a cancel can abandon it."""
        if cancel_token is None:
            return self._perform(method, url, **kwargs)

        future = self._executor.submit(self._perform, method, url, **kwargs)

        while True:
            try:
                return future.result(timeout=self.CANCEL_POLL_INTERVAL)
            except FutureTimeoutError:
                if cancel_token.is_cancelled:
                    future.cancel()
                    future.add_done_callback(self._discard)
                    self.logger.info(f"Cancelled in-flight {method} {url}")
                    raise CancelledError(cancel_token.reason or "Request cancelled")

    def _perform(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            return self._session.request(method, url, **kwargs)
        except requests.exceptions.Timeout as e:
            raise TransientError(f"Request timed out: {e}", cause=e)
        except requests.exceptions.ConnectionError as e:
            raise TransientError(f"Connection failed: {e}", cause=e)
        except requests.exceptions.RequestException as e:
            raise TransientError(f"Request failed: {e}", cause=e)

    @staticmethod
    def _discard(future: Future) -> None:
        """Close the response of an abandoned request once it lands."""
        if future.cancelled() or future.exception() is not None:
            return
        future.result().close()

    # -------------------------------------------------------------------------
    # Response Handling
    # -------------------------------------------------------------------------

    def _handle_response(
        self,
        response: requests.Response,
        endpoint: str,
    ) -> requests.Response:
        """Classify non-2xx responses."""
        if response.ok:
            return response

        status = response.status_code
        error_body = response.text[:500] if response.text else ""

        if status == 401:
            raise AuthenticationError(
                "Authentication failed. Check GITHUB_TOKEN or run 'gh auth login'."
            )

        if status == 403:
            if self._is_rate_limited(response):
                raise RateLimitError(
                    f"Rate limit exceeded for {endpoint}",
                    retry_after=self._retry_after(response),
                    status_code=status,
                )
            raise AuthenticationError(f"Permission denied for {endpoint}: {error_body}")

        if status == 404:
            raise NotFoundError(f"Not found: {endpoint}")

        if status == 429:
            raise RateLimitError(
                f"Too many requests for {endpoint}",
                retry_after=self._retry_after(response),
                status_code=status,
            )

        raise TransientError(f"API error {status}: {error_body}", status_code=status)

    @staticmethod
    def _is_rate_limited(response: requests.Response) -> bool:
        return (
            response.headers.get("X-RateLimit-Remaining") == "0"
            or "Retry-After" in response.headers
        )

    @staticmethod
    def _retry_after(response: requests.Response) -> Optional[float]:
        """Seconds to wait, from Retry-After or X-RateLimit-Reset."""
        retry_after = response.headers.get("Retry-After")
        if retry_after is not None:
            try:
                return max(0.0, float(retry_after))
            except ValueError:
                pass

        reset = response.headers.get("X-RateLimit-Reset")
        if reset is not None:
            try:
                return max(0.0, float(reset) - time.time())
            except ValueError:
                pass

        return None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the session and stop the worker threads."""
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._session.close()
