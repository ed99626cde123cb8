"""ASGI entrypoint: ``uvicorn staybook.api.app:app``."""

from staybook.api.factory import create_app

app = create_app()
