"""Provider-agnostic generation interface and output normalization.

Every text-generation backend answers with free-form text that is *supposed*
to be JSON. This module turns whatever comes back into canonical
``BookRecommendation`` objects (anti-corruption layer) so nothing downstream
ever looks at provider output directly.

Parsing precedence, first success wins:
    1. The whole body as JSON.
    2. The first balanced top-level JSON object/array inside the body
       (covers prose wrappers and ```json fences).
    3. Labelled lines: ``Title:``, ``Author:``, ``Description:`` collected
       independently and zipped to the shortest sequence.
    4. Nothing usable: an empty list. Malformed output is never an error.
"""

import json
import math
import random
import re
import string
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from booksage.config import ProviderKind
from booksage.core.exceptions import GenerationFailure
from booksage.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TITLE = "Unknown Title"
DEFAULT_AUTHOR = "Unknown Author"
DEFAULT_PUBLICATION_DATE = "Unknown"
DEFAULT_DESCRIPTION = "No description available"
DEFAULT_IMAGE_URL = "/images/default-book-cover.jpg"
FALLBACK_RATING = 4.0

# Top-level keys a model may wrap its list of books in
_CONTAINER_KEYS = ("books", "recommendations", "data")

_ID_ALPHABET = string.ascii_lowercase + string.digits

_TITLE_RE = re.compile(r"\bTitle\**[ \t]*:[ \t]*\**[ \t]*(.+)")
_AUTHOR_RE = re.compile(r"\bAuthor\**[ \t]*:[ \t]*\**[ \t]*(.+)")
_DESCRIPTION_RE = re.compile(
    r"\bDescription\**[ \t]*:[ \t]*\**[ \t]*(.*?)"
    r"(?=\n[ \t]*\n|\n[ \t]*\**(?:Title|Author|Description)\b|\Z)",
    re.DOTALL,
)

_NOT_PARSED = object()


# -----------------------------------------------------------------------------
# DTOs (Canonical Internal Models)
# -----------------------------------------------------------------------------


@dataclass
class GenerationOptions:
    """Options shared by all providers."""

    model: str
    api_key: str | None = None
    temperature: float = 0.7
    max_tokens: int = 2048
    timeout: float = 30.0


@dataclass
class BookRecommendation:
    """Canonical recommendation - provider agnostic.

    Every field has a default so a record can always be built from partial
    provider output.
    """

    id: str
    title: str = DEFAULT_TITLE
    author: str = DEFAULT_AUTHOR
    publication_date: str = DEFAULT_PUBLICATION_DATE
    description: str = DEFAULT_DESCRIPTION
    genres: list[str] = field(default_factory=list)
    rating: float = 0.0
    review_count: int = 0
    page_count: int = 0
    image_url: str = DEFAULT_IMAGE_URL

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON wire shape used by the API and the cache."""
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "publicationDate": self.publication_date,
            "description": self.description,
            "genres": list(self.genres),
            "rating": self.rating,
            "reviewCount": self.review_count,
            "pageCount": self.page_count,
            "imageUrl": self.image_url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BookRecommendation":
        """Create from a cached or persisted dict.

        Runs the same normalization as provider output, so old or partial
        cache entries still load.
        """
        return normalize_record(data)


@dataclass
class GenerationResult:
    """Normalized recommendations plus whatever the provider actually said."""

    recommendations: list[BookRecommendation]
    raw: Any = None


# -----------------------------------------------------------------------------
# Provider interface
# -----------------------------------------------------------------------------


class GenerationProvider(ABC):
    """Base class for text-generation backends.

    Subclasses only implement ``_complete``: send one prompt, return the
    text. Prompt framing, error translation, parsing and normalization are
    shared here.
    """

    kind: ProviderKind

    SYSTEM_PROMPT = (
        "You are a knowledgeable literary assistant that recommends books. "
        "Provide recommendations as structured JSON data."
    )

    def __init__(self, options: GenerationOptions) -> None:
        """Initialize the provider.

        Args:
            options: Model, sampling and timeout settings
        """
        self.options = options

    @property
    def name(self) -> str:
        """Provider name as used in logs, errors and the ``source`` field."""
        return self.kind.value

    async def get_recommendations(self, prompt: str) -> GenerationResult:
        """Generate recommendations for a prompt.

        Args:
            prompt: Natural-language request

        Returns:
            GenerationResult, possibly with an empty recommendation list

        Raises:
            GenerationFailure: On network or provider errors
        """
        try:
            content = await self._complete(self.format_prompt(prompt))
        except GenerationFailure:
            raise
        except Exception as e:
            logger.error(
                "generation_request_failed",
                provider=self.name,
                model=self.options.model,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise GenerationFailure(provider=self.name, cause=str(e)) from e

        result = parse_recommendations(content or "")
        logger.info(
            "generation_completed",
            provider=self.name,
            model=self.options.model,
            recommendations=len(result.recommendations),
        )
        return result

    def format_prompt(self, prompt: str) -> str:
        """Append the output contract every provider is asked to follow."""
        return (
            f"{prompt}\n\n"
            'Respond with a JSON object of the form {"books": [...]} where each '
            "book has: title, author, publicationDate, description, genres "
            "(array of strings), rating (number 1-5), reviewCount (number), "
            "pageCount (number) and imageUrl."
        )

    async def close(self) -> None:
        """Release provider resources. No-op unless a client holds a pool."""
        return None

    @abstractmethod
    async def _complete(self, prompt: str) -> str | None:
        """Send one prompt to the backend and return the raw text answer."""


# -----------------------------------------------------------------------------
# Parsing
# -----------------------------------------------------------------------------


def parse_recommendations(content: str) -> GenerationResult:
    """Parse provider output into normalized recommendations.

    Never raises; see the module docstring for the precedence rules.
    """
    text = content.strip()
    if not text:
        return GenerationResult(recommendations=[], raw=content)

    for data in (_loads(text), find_json_fragment(text)):
        if data is _NOT_PARSED:
            continue
        records = _unwrap_records(data)
        if records is not None:
            return GenerationResult(
                recommendations=[normalize_record(r) for r in records],
                raw=data,
            )

    return GenerationResult(recommendations=parse_labelled_lines(text), raw=content)


def find_json_fragment(text: str) -> Any:
    """Return the first balanced JSON object or array embedded in text.

    Brackets inside JSON strings are ignored. Candidates that balance but do
    not parse are skipped and the scan continues after their opening bracket.

    Returns:
        The parsed value, or the module sentinel when nothing parses
    """
    start = 0
    while True:
        opening = _next_opening(text, start)
        if opening == -1:
            return _NOT_PARSED
        closing = _matching_close(text, opening)
        if closing != -1:
            value = _loads(text[opening : closing + 1])
            if value is not _NOT_PARSED:
                return value
        start = opening + 1


def parse_labelled_lines(text: str) -> list[BookRecommendation]:
    """Build recommendations from ``Title:``/``Author:``/``Description:`` lines.

    The three label sequences are collected independently, in source order,
    and zipped up to the shortest one.
    """
    titles = [_clean_label_value(m) for m in _TITLE_RE.findall(text)]
    authors = [_clean_label_value(m) for m in _AUTHOR_RE.findall(text)]
    descriptions = [_clean_label_value(m) for m in _DESCRIPTION_RE.findall(text)]

    return [
        normalize_record(
            {
                "title": title,
                "author": author,
                "description": description,
                "rating": FALLBACK_RATING,
            }
        )
        for title, author, description in zip(titles, authors, descriptions)
    ]


def normalize_record(record: dict[str, Any]) -> BookRecommendation:
    """Coerce one provider record into the canonical shape.

    Accepts camelCase and snake_case keys. Missing or ill-typed values fall
    back to the documented defaults.
    """

    def pick(*keys: str) -> Any:
        for key in keys:
            value = record.get(key)
            if value is not None:
                return value
        return None

    return BookRecommendation(
        id=_as_text(pick("id"), "") or generate_book_id(),
        title=_as_text(pick("title"), DEFAULT_TITLE),
        author=_as_text(pick("author"), DEFAULT_AUTHOR),
        publication_date=_as_text(
            pick("publicationDate", "publication_date"), DEFAULT_PUBLICATION_DATE
        ),
        description=_as_text(pick("description"), DEFAULT_DESCRIPTION),
        genres=_as_genres(record),
        rating=float(_as_number(pick("rating"))),
        review_count=int(_as_number(pick("reviewCount", "review_count"))),
        page_count=int(_as_number(pick("pageCount", "page_count"))),
        image_url=_as_text(pick("imageUrl", "image_url", "image"), DEFAULT_IMAGE_URL),
    )


def generate_book_id() -> str:
    """Timestamp plus random suffix. Unique enough; collisions are tolerated."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=7))
    return f"book-{int(time.time() * 1000)}-{suffix}"


# -----------------------------------------------------------------------------
# Private helpers
# -----------------------------------------------------------------------------


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return _NOT_PARSED


def _unwrap_records(data: Any) -> list[dict[str, Any]] | None:
    """Find the list of book records in parsed JSON, or None if there is none."""
    if isinstance(data, list):
        items = data
    elif isinstance(data, dict):
        items = next(
            (data[k] for k in _CONTAINER_KEYS if isinstance(data.get(k), list)),
            None,
        )
        if items is None:
            return [data] if "title" in data else None
    else:
        return None
    return [item for item in items if isinstance(item, dict)]


def _next_opening(text: str, start: int) -> int:
    positions = [p for p in (text.find("{", start), text.find("[", start)) if p != -1]
    return min(positions) if positions else -1


def _matching_close(text: str, opening: int) -> int:
    """Index of the bracket closing ``text[opening]``, or -1 if unbalanced."""
    expected: list[str] = []
    in_string = False
    escaped = False
    for i in range(opening, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            expected.append("}")
        elif ch == "[":
            expected.append("]")
        elif ch in "}]":
            if not expected or expected.pop() != ch:
                return -1
            if not expected:
                return i
    return -1


def _clean_label_value(value: str) -> str:
    return value.strip().strip("*").strip().strip('"').strip()


def _as_text(value: Any, default: str) -> str:
    if isinstance(value, str):
        return value.strip() or default
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def _as_number(value: Any) -> float:
    if isinstance(value, bool):
        return 0
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return 0
    if not isinstance(value, (int, float)):
        return 0
    try:
        number = float(value)
    except OverflowError:
        return 0
    return number if math.isfinite(number) else 0


def _as_genres(record: dict[str, Any]) -> list[str]:
    genres = record.get("genres")
    if isinstance(genres, list):
        return [g.strip() for g in genres if isinstance(g, str) and g.strip()]
    if isinstance(genres, str) and genres.strip():
        return [genres.strip()]
    genre = record.get("genre")
    if isinstance(genre, str) and genre.strip():
        return [genre.strip()]
    return []
