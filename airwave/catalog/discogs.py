"""
Discogs catalog search.

Proposes tracks for discovery by querying the Discogs database search
endpoint with the configured genre, style and year filters. A random
results page (1-10) is requested by default so consecutive discovery
batches do not keep proposing the same releases.

Recency filtering is not done here; discovery checks every candidate
against the dedup window before spending lookup quota on it.

Usage:
    catalog = DiscogsCatalog.from_config(config.catalog)
    candidates = catalog.search(limit=20)
"""

import os
import random
from typing import Mapping, Protocol

import requests

from airwave.catalog.models import CatalogCandidate
from airwave.core.config import CatalogConfig
from airwave.core.exceptions import CatalogError, ConfigError
from airwave.core.logger import get_logger


logger = get_logger(__name__)


SEARCH_URL = "https://api.discogs.com/database/search"

# Random page range used for variety
MAX_RANDOM_PAGE = 10

REQUEST_TIMEOUT = 15.0


class CatalogProvider(Protocol):
    """Anything that can propose discovery candidates."""

    def search(self, limit: int) -> list[CatalogCandidate]:
        ...


def build_genre_query(genres: tuple[str, ...]) -> str:
    """
    Build the Discogs `q` expression for the genre filters.

    Examples:
        ("Jazz",) -> 'genre:"Jazz"'
        ("Jazz", "Funk") -> '(genre:"Jazz" OR genre:"Funk")'
    """
    if not genres:
        return ""
    clauses = [f'genre:"{genre}"' for genre in genres]
    if len(clauses) == 1:
        return clauses[0]
    return f"({' OR '.join(clauses)})"


class DiscogsCatalog:
    """
    Catalog provider backed by the Discogs API.

    Attributes:
        config: Catalog settings (filters, page size, user agent).
    """

    def __init__(
        self,
        token: str,
        config: CatalogConfig,
        session: requests.Session | None = None,
        rng: random.Random | None = None
    ) -> None:
        self._token = token
        self.config = config
        self._session = session or requests.Session()
        self._rng = rng or random.Random()

    @classmethod
    def from_config(
        cls,
        config: CatalogConfig,
        environ: Mapping[str, str] | None = None
    ) -> "DiscogsCatalog":
        """
        Build the provider, reading the token from the configured variable.

        Raises:
            ConfigError: If the token variable is not set.
        """
        environ = os.environ if environ is None else environ
        token = environ.get(config.token_env, "").strip()
        if not token:
            raise ConfigError(
                f"{config.token_env} not configured",
                details={"field": "catalog.token_env", "env": config.token_env}
            )
        return cls(token, config)

    def search(self, limit: int) -> list[CatalogCandidate]:
        """
        Fetch up to `limit` candidates.

        Raises:
            CatalogError: On HTTP or network failure (is_rate_limit set for 429).
        """
        params = self._build_params(limit)

        logger.debug(f"Discogs search: {params}")
        try:
            response = self._session.get(
                SEARCH_URL,
                params=params,
                headers={
                    "Authorization": f"Discogs token={self._token}",
                    "User-Agent": self.config.user_agent,
                },
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise CatalogError(
                f"Discogs request failed: {e}",
                details={"original_error": str(e)}
            ) from e

        if response.status_code == 429:
            raise CatalogError(
                "Discogs rate limit reached",
                details={"status": 429},
                is_rate_limit=True
            )
        if response.status_code != 200:
            raise CatalogError(
                f"Discogs API error: {response.status_code} {response.reason}",
                details={"status": response.status_code}
            )

        try:
            data = response.json()
        except ValueError as e:
            raise CatalogError("Discogs returned invalid JSON") from e

        candidates = []
        for result in data.get("results", []):
            candidate = CatalogCandidate.from_discogs_result(result)
            if candidate is None:
                logger.debug(f"Skipping Discogs result with unusable title: {result.get('title')!r}")
                continue
            candidates.append(candidate)

        pagination = data.get("pagination") or {}
        logger.info(
            f"Discogs returned {len(candidates)} candidates "
            f"(page {pagination.get('page', '?')}/{pagination.get('pages', '?')})"
        )
        return candidates[:limit]

    def _build_params(self, limit: int) -> dict[str, str]:
        config = self.config
        params = {
            "type": "release",
            "format": "album,ep,single",
            "per_page": str(max(limit, config.per_page)),
        }

        query = build_genre_query(config.genres)
        if query:
            params["q"] = query
        if config.styles:
            params["style"] = config.styles[0]

        if config.year_range is not None:
            low, high = config.year_range
            params["year"] = str(low) if low == high else f"{low}-{high}"

        if config.random_page:
            params["page"] = str(self._rng.randint(1, MAX_RANDOM_PAGE))

        return params
