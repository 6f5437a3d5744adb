"""Text-correction client using chat completions on an OpenAI-compatible API."""

import logging
from typing import Optional

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

EDITOR_SYSTEM_PROMPT = (
    'You are an expert editor. Correct grammar, spelling, and context errors in '
    'the transcript, using the video title as context: "{title}". '
    'Return only the corrected transcript text.'
)


class TextCorrectionClient:
    """Sends the whole transcript text in one chat completion."""

    def __init__(self,
                 api_key: str,
                 base_url: Optional[str] = None,
                 model: str = "llama-3.3-70b-versatile",
                 max_tokens: int = 4000,
                 client: Optional[AsyncOpenAI] = None):
        self.model = model
        self.max_tokens = max_tokens
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)

    async def correct(self, text: str, context_title: str = "") -> str:
        """Return the corrected text, or "" if the model produced nothing."""
        response = await self.client.chat.completions.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=0,
            messages=[
                {"role": "system", "content": EDITOR_SYSTEM_PROMPT.format(title=context_title)},
                {"role": "user", "content": text},
            ],
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def close(self) -> None:
        await self.client.close()
