"""Feedback API schemas."""

from pydantic import AliasChoices, BaseModel, Field, StrictBool

from booksage.schemas.common import BaseSchema
from booksage.schemas.preferences import PreferenceProfileResponse


class FeedbackRequest(BaseSchema):
    """A like/dislike for one book.

    ``genres`` and ``page_count`` are optional; when omitted they are taken
    from the stored book.
    """

    book_id: str = Field(
        ...,
        max_length=64,
        validation_alias=AliasChoices("book_id", "bookId"),
    )
    liked: StrictBool
    genres: list[str] | None = Field(None, max_length=20)
    page_count: int | None = Field(
        None,
        ge=0,
        validation_alias=AliasChoices("page_count", "pageCount"),
    )
    moods: list[str] = Field(default_factory=list, max_length=10)


class FeedbackResponse(BaseModel):
    """Acknowledgement of recorded feedback."""

    message: str
    book_id: str
    liked: bool
    profile: PreferenceProfileResponse | None = Field(
        None, description="Updated preferences, when the caller is signed in"
    )
