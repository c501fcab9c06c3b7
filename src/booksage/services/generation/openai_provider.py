"""OpenAI chat-completions provider."""

from openai import AsyncOpenAI

from booksage.config import ProviderKind
from booksage.services.generation.base import GenerationOptions, GenerationProvider


class OpenAIProvider(GenerationProvider):
    """Generation backed by the OpenAI chat completions API.

    Requests JSON-object output; the base class still parses defensively
    because the model is free to ignore the format hint.
    """

    kind = ProviderKind.OPENAI

    def __init__(
        self,
        options: GenerationOptions,
        client: AsyncOpenAI | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            options: Model, sampling and timeout settings
            client: Optional pre-configured client (for testing)
        """
        super().__init__(options)
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        """Get or create the OpenAI client.

        Created lazily so a missing API key only fails the first generation,
        not application startup.
        """
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.options.api_key,
                timeout=self.options.timeout,
                max_retries=1,
            )
        return self._client

    async def _complete(self, prompt: str) -> str | None:
        completion = await self._get_client().chat.completions.create(
            model=self.options.model,
            messages=[
                {"role": "system", "content": self.SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            response_format={"type": "json_object"},
            temperature=self.options.temperature,
            max_tokens=self.options.max_tokens,
        )
        if not completion.choices:
            return None
        return completion.choices[0].message.content

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.close()
            self._client = None
