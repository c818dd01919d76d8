"""Request dependencies resolving the services created by the lifespan."""

from fastapi import HTTPException, Request

from ..observability.notifications import NotificationCenter
from ..services.configuration import ConfigurationService
from ..storage.local_store import LocalStore


def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=503, detail=f"{name} is not initialized")
    return value


def get_config_service(request: Request) -> ConfigurationService:
    return _state(request, "config_service")


def get_notifier(request: Request) -> NotificationCenter:
    return _state(request, "notifier")


def get_store(request: Request) -> LocalStore:
    return _state(request, "local_store")
