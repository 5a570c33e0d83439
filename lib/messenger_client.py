import aiohttp
import json
import logging
from typing import Optional
from lib.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

class MessengerClient:
    def __init__(self, page_token: Optional[str] = None, api_version: Optional[str] = None):
        self.page_token = settings.meta_page_token if page_token is None else page_token
        self.api_version = api_version or settings.meta_api_version
        self.send_url = f"https://graph.facebook.com/{self.api_version}/me/messages"

    @property
    def enabled(self) -> bool:
        return bool(self.page_token)

    async def send_text(self, psid: str, text: str) -> bool:
        """Send a text reply back to the user via the Send API."""
        payload = {
            "recipient": {"id": psid},
            "messaging_type": "RESPONSE",
            "message": {"text": text}
        }

        if not self.enabled:
            logger.info(f"[dry-run] {json.dumps(payload, ensure_ascii=False)}")
            return True

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.send_url,
                    params={"access_token": self.page_token},
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=10)
                ) as response:
                    if response.status != 200:
                        logger.error(f"Send API error: {response.status} {await response.text()}")
                        return False
            logger.info(f"Message sent successfully to {psid}")
            return True
        except Exception as e:
            logger.error(f"Failed to send message to {psid}: {str(e)}")
            return False
