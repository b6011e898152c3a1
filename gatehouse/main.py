"""ASGI entrypoint: ``uvicorn gatehouse.main:app`` or the ``gatehouse`` script."""

import uvicorn

from .core.app_factory import create_application
from .core.config import Settings

app = create_application()


def run() -> None:
    settings = Settings()
    uvicorn.run("gatehouse.main:app", host=settings.host, port=settings.port)


__all__ = ("app", "run")
