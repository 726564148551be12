"""
FastAPI router for content generation
=====================================

Provides HTTP API endpoints for:
- Generating one SEO article through the multi-provider orchestrator
- Checking provider readiness (preflight)
- Reading the per-provider usage ledger
"""

from __future__ import annotations

import logging
from typing import Dict

from fastapi import APIRouter, HTTPException, Request, status

from content_orchestrator import ContentOrchestrator, FallbackSynthesisError, ModerationRejected
from models import ContentRequest, GenerationResult, PreflightReport, UsageSnapshot

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/content", tags=["content"])


def get_orchestrator(request: Request) -> ContentOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Content orchestrator is not initialized",
        )
    return orchestrator


@router.post("/generate", response_model=GenerationResult)
async def generate_content(payload: ContentRequest, request: Request) -> GenerationResult:
    """Generate one article; falls back to a template when every provider fails."""
    orchestrator = get_orchestrator(request)
    try:
        return await orchestrator.generate(payload)
    except ModerationRejected as exc:
        logger.info("Moderation rejected request for '%s': %s", payload.keyword, exc)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except FallbackSynthesisError as exc:
        logger.error("Fallback synthesis failed for '%s': %s", payload.keyword, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc


@router.get("/preflight", response_model=PreflightReport)
async def preflight(request: Request) -> PreflightReport:
    return await get_orchestrator(request).preflight()


@router.get("/usage", response_model=Dict[str, UsageSnapshot])
async def usage(request: Request) -> Dict[str, UsageSnapshot]:
    return get_orchestrator(request).get_usage_report()
