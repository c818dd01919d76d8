"""API for the Open WebUI token."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..config import get_settings
from ..storage.local_store import LocalStore
from .dependencies import get_store

router = APIRouter()


class TokenUpdate(BaseModel):
    token: str = Field(..., min_length=1)


class TokenStatus(BaseModel):
    configured: bool
    source: Optional[str] = None


def _status(store: LocalStore) -> TokenStatus:
    if get_settings().openwebui_token:
        return TokenStatus(configured=True, source="environment")
    if store.get_token():
        return TokenStatus(configured=True, source="store")
    return TokenStatus(configured=False)


@router.get("/settings/token", response_model=TokenStatus)
async def get_token_status(store: LocalStore = Depends(get_store)):
    """Report whether a token is configured. The token itself is never returned."""
    return _status(store)


@router.put("/settings/token", response_model=TokenStatus)
async def set_token(body: TokenUpdate, store: LocalStore = Depends(get_store)):
    store.set_token(body.token)
    return _status(store)


@router.delete("/settings/token", response_model=TokenStatus)
async def clear_token(store: LocalStore = Depends(get_store)):
    store.set_token(None)
    return _status(store)
