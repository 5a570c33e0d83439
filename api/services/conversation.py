import logging
from typing import Any, Dict, List, Mapping, NamedTuple, Optional

from lib.error_handler import ErrorHandler
from .aggregator import SessionAggregator
from .chat import ChatService
from .sessions import ConversationTurn, Role

logger = logging.getLogger(__name__)


class InboundEvent(NamedTuple):
    user_id: str
    text: str


def parse_messenger_payload(body: Dict[str, Any]) -> List[InboundEvent]:
    """Flatten a Messenger page webhook into (sender, text) events"""
    events = []
    for entry in body.get('entry') or []:
        for event in entry.get('messaging') or []:
            psid = (event.get('sender') or {}).get('id')
            text = (event.get('message') or {}).get('text') or (event.get('postback') or {}).get('payload')
            if psid and text:
                events.append(InboundEvent(user_id=str(psid), text=text))
            else:
                logger.info(f"Dropping Messenger event without sender or text: {list(event.keys())}")
    return events


def parse_twilio_form(form: Mapping[str, Any]) -> Optional[InboundEvent]:
    from_number = form.get('From')
    body = form.get('Body')
    if not from_number or not body:
        return None
    return InboundEvent(user_id=from_number, text=body)


class ConversationService:
    def __init__(self, aggregator: SessionAggregator, chat_service: ChatService):
        self.aggregator = aggregator
        self.chat = chat_service

    async def handle_event(self, user_id: Optional[str], text: Optional[str]) -> Optional[str]:
        """Record an inbound message and return the reply to send back"""
        if not user_id or not text or not text.strip():
            logger.info("Skipping inbound event without user id or text")
            return None

        session = self.aggregator.record_turn(user_id, ConversationTurn(role=Role.USER, content=text))
        await self.aggregator.compact(user_id)

        try:
            reply = await self.chat.generate_reply(self.aggregator.reply_context(session))
        except Exception as e:
            reply = ErrorHandler.handle_reply_error(e)

        self.aggregator.record_reply(session, ConversationTurn(role=Role.ASSISTANT, content=reply))
        logger.info(f"Generated response for {user_id}: {reply[:50]}")
        return reply
