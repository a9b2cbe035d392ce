"""
YouTube Data API v3 client.

Thin wrapper over the two endpoints the engine needs:
    - search.list  (100 units): find candidate videos for a query
    - videos.list  (1 unit):    durations, live status and view counts

Every call goes through the key pool: a credential is acquired (and
charged) before the request and the outcome is booked afterwards. A 403
flags that credential exhausted and the call is retried at once on the
next credential; the pool raising AllKeysExhaustedError ends the loop.
Transient failures (network errors, 429, 5xx) are retried with
exponential backoff and jitter; anything else raises YouTubeError.

Usage:
    client = YouTubeClient(key_pool, config.youtube)
    hits = client.search('"Daft Punk" "Around the World" official')
    details = client.video_details([hit.video_id for hit in hits])
"""

import random
import time
from typing import Any, Callable

import requests

from airwave.core.config import YouTubeConfig
from airwave.core.exceptions import YouTubeError
from airwave.core.logger import get_logger
from airwave.youtube.key_pool import QUOTA_EXCEEDED_STATUS, KeyPool
from airwave.youtube.models import SearchHit, VideoDetails


logger = get_logger(__name__)


API_BASE_URL = "https://www.googleapis.com/youtube/v3"

# Music category; keeps podcasts and vlogs out of the results
MUSIC_CATEGORY_ID = "10"

# Retry configuration for transient errors
MAX_REQUEST_RETRIES = 3
RETRY_DELAY_BASE = 2.0
RETRY_DELAY_MAX = 30.0
RETRY_JITTER_FACTOR = 0.3
RATE_LIMIT_DELAY_MULTIPLIER = 2.0

# videos.list accepts at most this many ids per call
MAX_IDS_PER_DETAILS_CALL = 50


def _is_transient_error(error_str: str) -> bool:
    """
    Check if an error message indicates a temporary failure worth retrying.

    Args:
        error_str: Lowercase error message string.
    """
    transient_patterns = (
        # Rate limiting
        "429",
        "rate",
        "too many",
        "throttl",

        # Connection errors
        "connection",
        "timeout",
        "timed out",
        "reset",
        "refused",
        "ssl",

        # Server errors
        "500",
        "502",
        "503",
        "504",
        "temporarily",
        "unavailable",

        # Network errors
        "network",
        "unreachable",
        "dns",
    )

    return any(pattern in error_str for pattern in transient_patterns)


def _error_reason(response: requests.Response) -> str:
    """Pull the API's error reason ("quotaExceeded", ...) out of a failed response."""
    try:
        payload = response.json()
    except ValueError:
        return response.reason or ""
    error = payload.get("error") or {}
    errors = error.get("errors") or [{}]
    return errors[0].get("reason") or error.get("message") or response.reason or ""


class YouTubeClient:
    """
    Quota-aware YouTube Data API client.

    Attributes:
        search_cost: Units acquired per search call.
        details_cost: Units acquired per videos.list call.
    """

    def __init__(
        self,
        key_pool: KeyPool,
        config: YouTubeConfig,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep
    ) -> None:
        self._key_pool = key_pool
        self._session = session or requests.Session()
        self._sleep = sleep
        self._timeout = config.request_timeout
        self.search_cost = config.search_cost
        self.details_cost = config.details_cost

    def search(self, query: str, max_results: int = 5) -> list[SearchHit]:
        """
        Search music videos for a query.

        Raises:
            YouTubeError: If the call fails for a non-transient reason or
                          keeps failing after all retries.
            AllKeysExhaustedError: If no credential can pay for the search.
        """
        data = self._call("search", {
            "part": "snippet",
            "q": query,
            "type": "video",
            "maxResults": max_results,
            "videoCategoryId": MUSIC_CATEGORY_ID,
            "order": "relevance",
        }, self.search_cost)

        hits = []
        for item in data.get("items", []):
            hit = SearchHit.from_search_item(item)
            if hit is not None:
                hits.append(hit)
        return hits

    def video_details(self, video_ids: list[str]) -> list[VideoDetails]:
        """
        Fetch details for up to 50 videos in one call.

        Returns:
            Details in API order; unknown ids are simply absent.
        """
        if not video_ids:
            return []

        data = self._call("videos", {
            "part": "snippet,contentDetails,statistics",
            "id": ",".join(video_ids[:MAX_IDS_PER_DETAILS_CALL]),
        }, self.details_cost)
        return [VideoDetails.from_api_item(item) for item in data.get("items", [])]

    def _call(self, endpoint: str, params: dict[str, Any], cost: int) -> dict[str, Any]:
        """
        Perform one API call with credential rotation and retries.

        Retry Strategy:
            - 403: flag the credential, retry immediately on the next one
            - 429 / 5xx / network: exponential backoff 2s -> 4s -> 8s (capped at 30s),
              +-30% jitter, doubled for rate limits; at most MAX_REQUEST_RETRIES attempts
            - other statuses: raise at once
        """
        url = f"{API_BASE_URL}/{endpoint}"
        attempt = 0
        last_error: YouTubeError | None = None

        while attempt < MAX_REQUEST_RETRIES:
            # Raises AllKeysExhaustedError when nothing can pay for the call
            credential = self._key_pool.acquire(cost)

            try:
                response = self._session.get(
                    url, params={**params, "key": credential.key}, timeout=self._timeout
                )
            except requests.RequestException as e:
                self._key_pool.record_outcome(credential.id, success=False)
                last_error = YouTubeError(
                    f"YouTube {endpoint} request failed: {e}",
                    details={"endpoint": endpoint, "key_id": credential.id, "original_error": str(e)}
                )
                if not _is_transient_error(str(e).lower()):
                    raise last_error from e
                self._backoff(attempt, str(e), is_rate_limit=False)
                attempt += 1
                continue

            if response.status_code == 200:
                try:
                    data = response.json()
                except ValueError as e:
                    self._key_pool.record_outcome(credential.id, success=False)
                    last_error = YouTubeError(
                        f"YouTube {endpoint} returned invalid JSON",
                        details={"endpoint": endpoint, "key_id": credential.id}
                    )
                    self._backoff(attempt, str(e), is_rate_limit=False)
                    attempt += 1
                    continue
                self._key_pool.record_outcome(credential.id, success=True)
                return data

            status = response.status_code
            reason = _error_reason(response)
            self._key_pool.record_outcome(credential.id, success=False, error_code=status)
            last_error = YouTubeError(
                f"YouTube {endpoint} failed: {status} {reason}",
                details={"endpoint": endpoint, "key_id": credential.id, "reason": reason},
                status_code=status,
                is_quota_error=status == QUOTA_EXCEEDED_STATUS
            )

            if status == QUOTA_EXCEEDED_STATUS:
                logger.warning(f"Key {credential.id} refused ({reason}), rotating to next key")
                continue

            if status == 429 or status >= 500:
                self._backoff(attempt, f"{status} {reason}", is_rate_limit=status == 429)
                attempt += 1
                continue

            raise last_error

        logger.error(f"YouTube {endpoint} failed after {MAX_REQUEST_RETRIES} attempts: {last_error}")
        raise last_error

    def _backoff(self, attempt: int, error: str, is_rate_limit: bool) -> None:
        """Sleep before the next attempt, unless this was the last one."""
        if attempt >= MAX_REQUEST_RETRIES - 1:
            return

        base_delay = min(RETRY_DELAY_BASE * (2 ** attempt), RETRY_DELAY_MAX)
        if is_rate_limit:
            base_delay = min(base_delay * RATE_LIMIT_DELAY_MULTIPLIER, RETRY_DELAY_MAX)

        # Add jitter (+-30%) to prevent thundering herd
        jitter = base_delay * RETRY_JITTER_FACTOR * (2 * random.random() - 1)
        delay = max(0.5, base_delay + jitter)

        log_msg = f"Request attempt {attempt + 1}/{MAX_REQUEST_RETRIES} failed: {error}. Retrying in {delay:.1f}s"
        if is_rate_limit:
            logger.warning(log_msg + " (rate limit detected)")
        else:
            logger.debug(log_msg)
        self._sleep(delay)
