import json
import logging
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Optional

from pydantic import BaseModel, Field

from lib.openai_client import OpenAIClient
from lib.error_handler import AppError

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = """
You are analyzing a handyman chat conversation.
Extract the following fields:

- Client Name
- Contact Phone
- Contact Email
- Location
- Task
- Description
- Conversation Summary (1-2 sentence summary)
- Time (ISO format if possible)

Return JSON only with these keys.
Leave fields blank if info is missing.
Do not add extra fields or text.

Conversation:
{transcript}
"""


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


class LeadRecord(BaseModel):
    """A potential customer request extracted from one conversation."""

    user_id: str = ""
    client_name: str = ""
    contact_phone: str = ""
    contact_email: str = ""
    location: str = ""
    task: str = ""
    description: str = ""
    conversation_summary: str = ""
    date_time: str = Field(default_factory=_iso_now)
    follow_up: bool = False
    job_scheduled: bool = False
    job_done: bool = False

    # Extraction prompt key -> field name
    EXTRACTED_FIELDS: ClassVar[Dict[str, str]] = {
        "Client Name": "client_name",
        "Contact Phone": "contact_phone",
        "Contact Email": "contact_email",
        "Location": "location",
        "Task": "task",
        "Description": "description",
        "Conversation Summary": "conversation_summary",
    }

    @classmethod
    def from_extraction(cls, parsed: Dict[str, Any], user_id: str) -> "LeadRecord":
        values = {name: _text(parsed.get(key)) for key, name in cls.EXTRACTED_FIELDS.items()}
        values["date_time"] = _text(parsed.get("Time")) or _iso_now()
        values["follow_up"] = bool(values["task"] or values["contact_phone"] or values["contact_email"])
        return cls(user_id=user_id, **values)

    @property
    def has_task(self) -> bool:
        return bool(self.task or self.description)

    def to_row(self) -> Dict[str, Any]:
        return self.model_dump()


class LeadExtractor:
    def __init__(self, openai_client: OpenAIClient, model: str = "gpt-4o-mini"):
        self.client = openai_client
        self.model = model

    async def extract(self, transcript: str, user_id: str) -> Optional[LeadRecord]:
        """Turn a conversation transcript into a LeadRecord, or None on API failure"""
        try:
            content = await self.client.complete(
                messages=[{"role": "user", "content": EXTRACTION_PROMPT.format(transcript=transcript)}],
                model=self.model,
                max_tokens=300,
                temperature=0,
                json_mode=True
            )
        except AppError as e:
            logger.error(f"Lead extraction API error for {user_id}: {e.message}")
            return None

        record = LeadRecord.from_extraction(self._parse(content), user_id)
        logger.info(f"Extracted lead for {user_id}: task={record.task!r} follow_up={record.follow_up}")
        return record

    @staticmethod
    def _parse(content: str) -> Dict[str, Any]:
        text = (content or "").strip()
        if text.startswith("```"):
            text = text.strip("`")
            if text.lower().startswith("json"):
                text = text[4:]
            text = text.strip()

        try:
            parsed = json.loads(text or "{}")
        except json.JSONDecodeError:
            logger.warning(f"Could not parse extraction response: {text[:100]!r}")
            return {}

        if not isinstance(parsed, dict):
            logger.warning("Extraction response was not a JSON object")
            return {}
        return parsed
