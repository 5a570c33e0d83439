from contextlib import asynccontextmanager
import json
import logging
import sys

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from supabase import create_client
from twilio.twiml.messaging_response import MessagingResponse

from lib.config import get_settings
from lib.error_handler import ErrorHandler
from lib.messenger_client import MessengerClient
from lib.openai_client import OpenAIClient
from .services.aggregator import SessionAggregator
from .services.chat import ChatService
from .services.conversation import ConversationService, parse_messenger_payload, parse_twilio_form
from .services.extraction import LeadExtractor
from .services.storage import LeadStore

settings = get_settings()

# Configure detailed logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stdout,
    force=True  # Ensure our config takes precedence
)

# Create logger for this file
logger = logging.getLogger(__name__)

# Initialize clients
logger.info("Initializing OpenAI client...")
openai_client = OpenAIClient(api_key=settings.openai_api_key)
if not openai_client.enabled:
    logger.warning("OPENAI_API_KEY not set, replies will echo the user")

supabase = None
if settings.supabase_configured:
    logger.info("Initializing Supabase client...")
    try:
        supabase = create_client(settings.supabase_url, settings.supabase_key)
        logger.info("Supabase client initialized successfully")
    except Exception as e:
        logger.error(f"Error initializing Supabase client: {str(e)}")
        raise
else:
    logger.warning("SUPABASE_URL or SUPABASE_KEY not set, leads will not be persisted")

messenger_client = MessengerClient(
    page_token=settings.meta_page_token,
    api_version=settings.meta_api_version
)

# Initialize services
logger.info("Initializing services...")
chat_service = ChatService(openai_client=openai_client, model=settings.chat_model)
lead_extractor = LeadExtractor(openai_client=openai_client, model=settings.extraction_model)
lead_store = LeadStore(supabase_client=supabase, leads_table=settings.leads_table)

aggregator = SessionAggregator(
    extractor=lead_extractor,
    lead_store=lead_store,
    summarizer=chat_service.summarize,
    inactivity_window_ms=settings.inactivity_window_ms,
    max_live_turns=settings.max_live_turns,
    deadline_check_interval_ms=settings.deadline_check_interval_ms
)

conversation_service = ConversationService(aggregator=aggregator, chat_service=chat_service)
logger.info("All services initialized successfully")


@asynccontextmanager
async def lifespan(app: FastAPI):
    aggregator.start()
    yield
    await aggregator.stop()


app = FastAPI(title="Lead Collector Agent", lifespan=lifespan)


def create_twiml_response(message: str = None) -> Response:
    """Create a TwiML response with the given message"""
    resp = MessagingResponse()
    if message:
        resp.message(message)
    return Response(content=str(resp), media_type='text/xml')


@app.get("/webhook")
async def verify_webhook(request: Request):
    """Messenger webhook verification handshake"""
    mode = request.query_params.get('hub.mode')
    token = request.query_params.get('hub.verify_token')
    challenge = request.query_params.get('hub.challenge', '')

    if mode == 'subscribe' and settings.meta_verify_token and token == settings.meta_verify_token:
        logger.info("Webhook verified")
        return PlainTextResponse(challenge)

    logger.warning(f"Webhook verification failed (mode={mode})")
    return PlainTextResponse("Verification failed", status_code=403)


@app.post("/webhook")
async def messenger_webhook(request: Request):
    """Handle Messenger page events"""
    try:
        try:
            body = await request.json()
        except json.JSONDecodeError:
            logger.warning("Webhook body is not valid JSON")
            return PlainTextResponse("EVENT_RECEIVED")

        if not isinstance(body, dict) or body.get('object') != 'page':
            return PlainTextResponse("Not Found", status_code=404)

        for event in parse_messenger_payload(body):
            reply = await conversation_service.handle_event(event.user_id, event.text)
            if reply:
                await messenger_client.send_text(event.user_id, reply)

    except Exception as e:
        ErrorHandler.handle_webhook_error(e)

    return PlainTextResponse("EVENT_RECEIVED")


@app.post("/sms")
async def sms_webhook(request: Request):
    """Handle incoming SMS webhooks from Twilio"""
    try:
        form_data = await request.form()
        logger.info(f"SMS received from {form_data.get('From')}")

        event = parse_twilio_form(form_data)
        if event is None:
            return create_twiml_response()

        reply = await conversation_service.handle_event(event.user_id, event.text)
        return create_twiml_response(reply)

    except Exception as e:
        ErrorHandler.handle_webhook_error(e)
        return create_twiml_response()


@app.api_route("/cron", methods=['GET', 'POST'])
async def cron():
    """Finalize sessions whose inactivity deadline has passed"""
    finalized = await aggregator.sweep()
    logger.info(f"Cron check completed, finalized {finalized} session(s)")
    return {"status": "ok", "finalized": finalized}


@app.get("/status")
async def status():
    """Check service configuration"""
    return JSONResponse({
        "ok": True,
        "hasVerifyToken": bool(settings.meta_verify_token),
        "hasMetaToken": bool(settings.meta_page_token),
        "hasOpenAIKey": bool(settings.openai_api_key),
        "hasSupabase": supabase is not None,
        "activeSessions": len(aggregator.store),
        "pendingDeadlines": len(aggregator.scheduler)
    })


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
