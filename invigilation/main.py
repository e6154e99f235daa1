"""Run the invigilation service with uvicorn."""

import uvicorn

from invigilation.api import create_app
from invigilation.config import settings
from invigilation.logging_config import setup_logging

setup_logging()

app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)
