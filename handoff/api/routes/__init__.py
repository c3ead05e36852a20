"""API routes."""

from fastapi import APIRouter

from handoff.api.routes import escalations, operators

api_router = APIRouter()

api_router.include_router(escalations.router, prefix="/escalations", tags=["escalations"])
api_router.include_router(operators.router, prefix="/operators", tags=["operators"])
