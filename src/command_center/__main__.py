"""Run the API with ``python -m command_center``."""

import uvicorn

from .config import settings

if __name__ == "__main__":
    uvicorn.run("command_center.main:app", host=settings.api_host, port=settings.api_port)
