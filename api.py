"""Standalone server for the apartment viewing request API"""

from dotenv import load_dotenv
import structlog

# Load environment variables before the app reads its settings
load_dotenv()

from apartment_viewing.main import app  # noqa: E402

logger = structlog.get_logger()


def run():
    import uvicorn

    logger.info("Starting apartment viewing request API server")
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_level="info"
    )


if __name__ == "__main__":
    run()
