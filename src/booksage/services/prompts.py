"""Prompt construction for recommendation searches and similar-book lookups.

The output contract (JSON shape) is appended by the provider base class, so
these builders only describe *what* to recommend.
"""

from typing import Any

from booksage.services.preferences import PreferenceDimension, PreferenceProfile

MOOD_HINT_THRESHOLD = 0.5


def build_search_prompt(
    query: str,
    options: dict[str, Any] | None = None,
    profile: PreferenceProfile | None = None,
) -> str:
    """Build the prompt for an open-ended search.

    Args:
        query: User's natural-language request
        options: Optional filters (``genres``, ``length``, ``mood``)
        profile: Learned preferences of the requesting user, if known

    Returns:
        Prompt text
    """
    options = options or {}
    prompt = f"Recommend books that match the following criteria: {query.strip()}"

    genres = [g for g in options.get("genres") or [] if g]
    if genres:
        prompt += f" in the {', '.join(genres)} genre{'s' if len(genres) > 1 else ''}"
    if options.get("length"):
        prompt += f" that are {options['length']} in length"
    if options.get("mood"):
        prompt += f" with a {options['mood']} mood"

    hints = preference_hints(profile) if profile is not None else []
    if hints:
        prompt += ". Consider that the user has shown preference for " + ", ".join(hints)

    return prompt + ". Return at least 5 books if possible."


def build_similar_prompt(
    title: str,
    author: str,
    genres: list[str],
    *,
    count: int,
    exclude_titles: list[str] | None = None,
) -> str:
    """Build the prompt for books similar to one reference book."""
    prompt = f'Please recommend {count} books similar to "{title}" by {author}.'
    if genres:
        prompt += f" The book belongs to these genres: {', '.join(genres)}."
    if exclude_titles:
        listed = ", ".join(f'"{t}"' for t in exclude_titles)
        prompt += f" Do not include the original book or any of: {listed}."
    else:
        prompt += " Do not include the original book."
    return prompt


def preference_hints(profile: PreferenceProfile) -> list[str]:
    """Natural-language fragments describing a user's learned taste."""
    hints: list[str] = []
    if profile.favorite_genres:
        hints.append(f"genres like {', '.join(profile.favorite_genres)}")
    if profile.preferred_length:
        hints.append(f"{profile.preferred_length} length books")

    moods = profile.liked_labels(PreferenceDimension.MOOD, MOOD_HINT_THRESHOLD)
    if moods:
        hints.append(f"moods like {', '.join(moods)}")
    return hints
