from typing import Optional
import logging

logger = logging.getLogger(__name__)

REPLY_APOLOGY = "Sorry, I hit a snag. Please try again."

class AppError(Exception):
    def __init__(self, message: str, status_code: int = 500, user_message: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.user_message = user_message or "An error occurred. Please try again later."
        super().__init__(self.message)

class ErrorHandler:
    @staticmethod
    def handle_reply_error(error: Exception) -> str:
        logger.error(f"Reply generation error: {str(error)}")
        return REPLY_APOLOGY

    @staticmethod
    def handle_extraction_error(error: Exception, user_id: str) -> None:
        logger.error(f"Lead extraction failed for {user_id}: {str(error)}")

    @staticmethod
    def handle_persistence_error(error: Exception, user_id: str) -> None:
        logger.error(f"Lead persistence failed for {user_id}: {str(error)}")

    @staticmethod
    def handle_webhook_error(error: Exception) -> None:
        logger.error(f"Webhook handler error: {str(error)}", exc_info=True)
