import uvicorn
import logging
from core.settings import settings
from routes.main import app

# Set up logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

if __name__ == "__main__":
  host = settings.HOST
  port = settings.PORT
  logger.info(f"Starting server at http://{host}:{port}")
  uvicorn.run(app, host=host, port=port)
