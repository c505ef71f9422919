"""API routes for smart-link redirects and manual endpoint checks."""

from typing import Dict, Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from loguru import logger
from pydantic import BaseModel

from api.smartlink.views import render_no_offer_page
from lib.smartlink.models import Fallback, Redirect
from services.smartlink.service import ISmartLinkService

router = APIRouter()

NO_CACHE = {"Cache-Control": "no-store"}


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class CheckResponse(BaseModel):
    ok: bool
    status: Optional[int] = None
    error: Optional[str] = None
    errorCode: Optional[str] = None
    inactiveReason: Optional[str] = None


def get_service(request: Request) -> ISmartLinkService:
    return request.app.state.service


def first_values(request: Request) -> Dict[str, str]:
    """Query params as a flat dict; for repeated keys the first value wins."""
    params: Dict[str, str] = {}
    for key, value in request.query_params.multi_items():
        params.setdefault(key, value)
    return params


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/go/{slug}")
async def go(slug: str, request: Request):
    result = await get_service(request).resolve(slug, first_values(request))

    if isinstance(result, (Redirect, Fallback)):
        return RedirectResponse(url=result.url, status_code=302, headers=NO_CACHE)
    return HTMLResponse(content=render_no_offer_page(result.message), status_code=503, headers=NO_CACHE)


@router.post("/api/endpoints/{endpoint_id}/check", response_model=CheckResponse)
async def check_endpoint(endpoint_id: int, request: Request):
    try:
        result = await get_service(request).check_endpoint(endpoint_id)
    except Exception:
        logger.exception(f"Manual check of endpoint {endpoint_id} failed")
        raise HTTPException(status_code=503, detail="Service temporarily unavailable")

    if result is None:
        raise HTTPException(status_code=404, detail="Endpoint not found")
    return CheckResponse(**result.to_dict())
