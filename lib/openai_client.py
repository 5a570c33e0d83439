from openai import AsyncOpenAI
from typing import Dict, List, Optional
from lib.config import get_settings
from lib.error_handler import AppError

settings = get_settings()

class OpenAIClient:
    def __init__(self, api_key: Optional[str] = None, client: Optional[AsyncOpenAI] = None):
        self.api_key = settings.openai_api_key if api_key is None else api_key
        self.client = client or AsyncOpenAI(api_key=self.api_key)

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def complete(
        self,
        messages: List[Dict[str, str]],
        model: str,
        max_tokens: int = 300,
        temperature: float = 0.5,
        json_mode: bool = False
    ) -> str:
        """
        Run a chat completion and return the message text
        """
        kwargs = {}
        if json_mode:
            kwargs['response_format'] = {"type": "json_object"}

        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs
            )
        except Exception as e:
            raise AppError(f"Completion failed: {str(e)}", status_code=502)

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""
