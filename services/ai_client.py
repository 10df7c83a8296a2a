# services/ai_client.py
import logging
from openai import OpenAI

logger = logging.getLogger(__name__)


class LLMClient:
    """
    Thin wrapper over the chat completions API.

    Works with OpenAI itself or any OpenAI-compatible endpoint (Groq etc.) through base_url.
    """

    def __init__(self, api_key: str, model: str = "gpt-4", base_url: str = None):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self._client = None

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            if not self.api_key:
                raise RuntimeError("Missing OPENAI_API_KEY environment variable")
            self._client = OpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    def complete(self, system_prompt: str, user_prompt: str, temperature: float = 0.7,
                 max_tokens: int = 800) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        response = self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )

        # Extract first choice
        return response.choices[0].message.content or ""
