"""
Client for the DigQuest REST API collection endpoints.

The reconciler never performs network calls itself. This client is the
network collaborator that feeds it: it fetches a whole collection as a
JSON array and hands it over unchanged.

Endpoints:
    GET /api/finds
    GET /api/locations
    GET /api/posts
    GET /api/events

Retries:
    Timeouts, connection errors and 5xx responses are retried with
    exponential backoff. 4xx responses and malformed bodies fail at once.
"""

import requests

from digquest_sync.core.config import ApiConfig
from digquest_sync.core.exceptions import ApiError
from digquest_sync.core.logger import get_logger
from digquest_sync.storage.kinds import EntityKind
from digquest_sync.utils import retry_on_failure

logger = get_logger(__name__)


COLLECTION_PATHS: dict[EntityKind, str] = {
    EntityKind.FIND: "/api/finds",
    EntityKind.LOCATION: "/api/locations",
    EntityKind.POST: "/api/posts",
    EntityKind.EVENT: "/api/events",
}

USER_AGENT = "digquest-sync"


def _is_retryable(error: Exception) -> bool:
    return isinstance(error, ApiError) and error.is_retryable


class DigQuestApiClient:
    """
    Fetch entity collections from a DigQuest server.

    Args:
        base_url: Server root, e.g. 'https://digquest.example.com'.
        timeout: Per-request timeout in seconds.
        retries: Total attempts per collection fetch.
        retry_delay: Initial delay between attempts in seconds.
        session: Optional requests.Session (injected by tests).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        retries: int = 3,
        retry_delay: float = 1.0,
        session: requests.Session | None = None
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retries = retries
        self.retry_delay = retry_delay
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})

    @classmethod
    def from_config(cls, config: ApiConfig) -> "DigQuestApiClient":
        return cls(config.base_url, timeout=config.timeout, retries=config.retries)

    def collection_url(self, kind: EntityKind | str) -> str:
        return f"{self.base_url}{COLLECTION_PATHS[EntityKind(kind)]}"

    def fetch_collection(self, kind: EntityKind | str) -> list[dict]:
        """
        Fetch the server collection of a kind.

        Raises:
            ApiError: On transport failure, HTTP error, or a body that is
                      not a JSON array (after retries where applicable).
        """
        fetch = retry_on_failure(
            max_attempts=self.retries,
            delay=self.retry_delay,
            should_retry=_is_retryable
        )(self._fetch_once)
        collection = fetch(self.collection_url(kind))
        logger.info(f"Fetched {len(collection)} {EntityKind(kind).value} records from server")
        return collection

    def _fetch_once(self, url: str) -> list[dict]:
        try:
            response = self.session.get(url, timeout=self.timeout)
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            raise ApiError(
                f"Request to {url} failed: {e}",
                details={"url": url, "original_error": str(e)},
                is_retryable=True
            ) from e
        except requests.exceptions.RequestException as e:
            raise ApiError(
                f"Request to {url} failed: {e}",
                details={"url": url, "original_error": str(e)}
            ) from e

        if response.status_code >= 400:
            raise ApiError(
                f"Request to {url} failed: HTTP {response.status_code}",
                details={"url": url},
                status_code=response.status_code,
                is_retryable=response.status_code >= 500
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ApiError(
                f"Response from {url} is not valid JSON",
                details={"url": url, "original_error": str(e)},
                status_code=response.status_code
            ) from e

        if not isinstance(body, list):
            raise ApiError(
                f"Response from {url} is not a JSON array",
                details={"url": url, "type": type(body).__name__},
                status_code=response.status_code
            )

        return body
