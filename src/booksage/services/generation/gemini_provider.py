"""Google Gemini provider using the google-genai SDK."""

from google import genai
from google.genai import types

from booksage.config import ProviderKind
from booksage.services.generation.base import GenerationOptions, GenerationProvider


class GeminiProvider(GenerationProvider):
    """Generation backed by Gemini through ``client.aio.models``."""

    kind = ProviderKind.GEMINI

    def __init__(
        self,
        options: GenerationOptions,
        client: genai.Client | None = None,
    ) -> None:
        super().__init__(options)
        self._client = client

    def _get_client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(
                api_key=self.options.api_key,
                http_options=types.HttpOptions(timeout=int(self.options.timeout * 1000)),
            )
        return self._client

    async def _complete(self, prompt: str) -> str | None:
        config = types.GenerateContentConfig(
            system_instruction=self.SYSTEM_PROMPT,
            temperature=self.options.temperature,
            max_output_tokens=self.options.max_tokens,
            response_mime_type="application/json",
        )
        response = await self._get_client().aio.models.generate_content(
            model=self.options.model,
            contents=prompt,
            config=config,
        )
        return response.text
