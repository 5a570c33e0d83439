import logging
import uvicorn
from dotenv import load_dotenv

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

load_dotenv()

if __name__ == "__main__":
    # Log startup
    logger.info("Starting lead collector server...")
    uvicorn.run("api.routes:app", host="127.0.0.1", port=8000, reload=True)
