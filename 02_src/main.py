"""Main entry point for the sales intake engine."""

import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from intake.api import create_fastapi_app
from intake.api.routes import control
from intake.logging_config import get_logger, setup_logging
from sim import Sim

logger = get_logger(__name__)


def main():
    """Run the application."""
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    setup_logging()

    # Get configuration from environment
    api_host = os.getenv("API_HOST", "localhost")
    api_port = int(os.getenv("API_PORT", "8000"))
    api_url = f"http://{api_host}:{api_port}"

    # SIM drives the inbound webhook from the control routes
    control.set_sim_instance(Sim(api_url=api_url))

    app = create_fastapi_app()
    logger.info("Serving on %s", api_url)

    uvicorn.run(
        app,
        host=api_host,
        port=api_port,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
