"""Request-scoped access to the objects created at startup."""

from fastapi import Request

from connectors.sankhya import SankhyaConnector
from core.config import SankhyaSettings


def get_connector(request: Request) -> SankhyaConnector:
    return request.app.state.connector


def get_settings(request: Request) -> SankhyaSettings:
    return request.app.state.settings
