"""Preference profile API schemas."""

from pydantic import BaseModel, Field

from booksage.services.preferences import PreferenceProfile


class PreferenceStatResponse(BaseModel):
    """Counters and like probability for one taste label."""

    count: int = Field(..., ge=0)
    likes: int = Field(..., ge=0)
    probability: float = Field(..., ge=0.0, le=1.0)


class PreferenceProfileResponse(BaseModel):
    """A user's learned preferences. Maps are empty, never null."""

    user_id: str
    genre_preferences: dict[str, PreferenceStatResponse] = Field(default_factory=dict)
    length_preferences: dict[str, PreferenceStatResponse] = Field(default_factory=dict)
    mood_preferences: dict[str, PreferenceStatResponse] = Field(default_factory=dict)
    favorite_genres: list[str] = Field(default_factory=list)
    preferred_length: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_profile(cls, profile: PreferenceProfile) -> "PreferenceProfileResponse":
        return cls.model_validate(profile.to_dict())
