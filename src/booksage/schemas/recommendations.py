"""Recommendation search and similar-book API schemas.

Book fields use camelCase on the wire (``publicationDate``, ``imageUrl``...)
while the Python attributes stay snake_case.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from booksage.schemas.common import BaseSchema
from booksage.services.generation.base import BookRecommendation

# =============================================================================
# Book
# =============================================================================


class BookItem(BaseModel):
    """A single recommended book."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "book-1767225600000-k3j9x2a",
                "title": "The Left Hand of Darkness",
                "author": "Ursula K. Le Guin",
                "publicationDate": "1969",
                "description": "An envoy visits a planet whose people have no fixed sex.",
                "genres": ["Science Fiction"],
                "rating": 4.2,
                "reviewCount": 1200,
                "pageCount": 304,
                "imageUrl": "/images/default-book-cover.jpg",
            }
        },
    )

    id: str = Field(..., description="Book record id")
    title: str
    author: str
    publication_date: str = Field(..., alias="publicationDate")
    description: str
    genres: list[str] = Field(default_factory=list)
    rating: float = 0.0
    review_count: int = Field(0, alias="reviewCount")
    page_count: int = Field(0, alias="pageCount")
    image_url: str = Field(..., alias="imageUrl")

    @classmethod
    def from_recommendation(cls, rec: BookRecommendation) -> "BookItem":
        return cls.model_validate(rec.to_dict())


# =============================================================================
# Search Request/Response
# =============================================================================


class SearchOptions(BaseSchema):
    """Optional filters for a recommendation search.

    Options are part of the cache key: the same query with different options
    is a different cache entry.
    """

    genres: list[str] = Field(default_factory=list, max_length=10)
    length: str | None = Field(
        None,
        max_length=20,
        description="Preferred length, e.g. 'short', 'medium' or 'long'",
    )
    mood: str | None = Field(None, max_length=50, description="Desired mood")

    def to_cache_options(self) -> dict[str, Any]:
        """Options as a plain dict, omitting unset filters."""
        return self.model_dump(exclude_defaults=True)


class SearchRequest(BaseSchema):
    """Request body for a recommendation search."""

    query: str = Field(
        ...,
        max_length=1000,
        description="What the reader is looking for",
        json_schema_extra={"example": "cozy mysteries set in Japan"},
    )
    options: SearchOptions | None = None
    regenerate: bool = Field(
        False, description="Bypass the cache and generate fresh results"
    )


class SearchResponse(BaseModel):
    """Response for a recommendation search."""

    books: list[BookItem]
    source: str = Field(..., description='"cache" or the generation provider name')
    query: str
    options: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Similar Books
# =============================================================================


class SimilarBooksResponse(BaseModel):
    """Response for a similar-books lookup."""

    book_id: str
    books: list[BookItem]
    source: str = Field(
        ...,
        description='"cache", "database", "hybrid" or "database_fallback"',
    )
