"""APIRouter registration for the Herdbook service."""

from __future__ import annotations

from fastapi import APIRouter

from herdbook.routes.animals import router as animals_router

api_router = APIRouter()
api_router.include_router(animals_router, tags=["Animals"])

__all__ = ["api_router"]
