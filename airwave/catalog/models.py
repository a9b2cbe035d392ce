"""
Data models for catalog search results.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class CatalogCandidate:
    """
    A track proposed by the catalog provider, before video matching.

    Attributes:
        catalog_id: Provider id (Discogs release id as a string).
        artist: Artist name.
        title: Track or release title.
        year: Release year, if known.
        label: First listed label, if any.
        genres: Provider genres.
        styles: Provider styles.
        thumbnail_url: Cover thumbnail, if any.
    """

    catalog_id: str
    artist: str
    title: str
    year: int | None = None
    label: str | None = None
    genres: tuple[str, ...] = ()
    styles: tuple[str, ...] = ()
    thumbnail_url: str | None = None

    @classmethod
    def from_discogs_result(cls, result: dict[str, Any]) -> "CatalogCandidate | None":
        """
        Create a candidate from a Discogs database search result.

        Discogs titles look like "Artist - Title"; results without the
        separator cannot be matched and yield None.

        Behavior:
            1. Split the title on the first " - "
            2. Keep everything after it as the title (titles may contain " - ")
            3. Take the first label, genres and styles
        """
        parts = (result.get("title") or "").split(" - ")
        if len(parts) < 2:
            return None

        artist = parts[0].strip()
        title = " - ".join(parts[1:]).strip()
        if not artist or not title or result.get("id") is None:
            return None

        labels = result.get("label") or []
        year = result.get("year")
        try:
            year = int(year) if year else None
        except (TypeError, ValueError):
            year = None

        return cls(
            catalog_id=str(result["id"]),
            artist=artist,
            title=title,
            year=year,
            label=labels[0] if labels else None,
            genres=tuple(result.get("genre") or ()),
            styles=tuple(result.get("style") or ()),
            thumbnail_url=result.get("thumb") or None,
        )
