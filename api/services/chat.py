import logging
from typing import List, Optional

from lib.openai_client import OpenAIClient
from lib.error_handler import AppError, ErrorHandler
from .sessions import ConversationTurn, Role, format_transcript

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """
You are the AI assistant for Handyman Grace Company, a handyman/home-repair service in Sacramento County, CA.
Tone: friendly, brief, confident. Keep replies to 2-5 sentences.
Do not guess exact prices. If asked for price, say you can give a ballpark after a few details.
If the user seems like a lead (estimate/availability/onsite), politely collect:
- Name
- Best contact (phone/email)
- Address/area in Sacramento
- Task description (photos/links if any)
- Timing (preferred date/time)
- Budget (optional)
Then offer to pass it to the team now.
If it's outside typical handyman scope, suggest contacting a licensed GC. For emergencies, advise calling local emergency services.
If asked, you may share: (916) 769-2889 or (916) 281-7178.
""".strip()

class ChatService:
    def __init__(self, openai_client: OpenAIClient, model: str = "gpt-4.1-mini"):
        self.client = openai_client
        self.model = model

    async def generate_reply(self, turns: List[ConversationTurn]) -> str:
        """Generate the assistant's reply to the conversation so far"""
        if not self.client.enabled:
            last_user = next((t.content for t in reversed(turns) if t.role == Role.USER), "")
            return f"Echo: {last_user}"

        messages = [{"role": "system", "content": SYSTEM_PROMPT}]
        messages.extend(turn.as_message() for turn in turns)

        try:
            reply = await self.client.complete(
                messages=messages,
                model=self.model,
                max_tokens=300,
                temperature=0.5
            )
        except AppError as e:
            return ErrorHandler.handle_reply_error(e)

        return reply.strip() or "…"

    async def summarize(self, turns: List[ConversationTurn]) -> Optional[str]:
        """Summarize older turns so they can stand in for the full history"""
        if not turns or not self.client.enabled:
            return None

        prompt = (
            "Summarize the following conversation in 2-3 sentences for context. "
            "Keep any names, contact details, locations and requested work.\n"
            f"{format_transcript(turns)}"
        )
        try:
            summary = await self.client.complete(
                messages=[{"role": "system", "content": prompt}],
                model=self.model,
                max_tokens=150,
                temperature=0.5
            )
        except AppError as e:
            logger.error(f"Summary generation failed: {e.message}")
            return None

        return summary.strip() or None
