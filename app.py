"""FastAPI JSON API for the listing resolver."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import scheduler
from errors import InvalidURL, ListingNotFound, UnsupportedDomain
from resolver import ListingResolver, create_resolver

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    if getattr(app.state, "resolver", None) is None:
        app.state.resolver = create_resolver()
    scheduler.start_scheduler(app.state.resolver)
    yield
    scheduler.stop_scheduler()


app = FastAPI(title="Listing Resolver", lifespan=lifespan)


def get_resolver(request: Request) -> ListingResolver:
    return request.app.state.resolver


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@app.exception_handler(InvalidURL)
@app.exception_handler(UnsupportedDomain)
async def bad_url_handler(request: Request, exc: ValueError):
    return _error(400, str(exc))


@app.exception_handler(ListingNotFound)
async def not_found_handler(request: Request, exc: ListingNotFound):
    return _error(404, "Ad not found")


# ── API: Ads ──────────────────────────────────────────────────

class ResolveRequest(BaseModel):
    url: str


@app.post("/api/ads/resolve")
def api_resolve(data: ResolveRequest, resolver: ListingResolver = Depends(get_resolver)):
    result = resolver.resolve(data.url)
    return {
        "success": True,
        "created": result.created,
        "degraded": result.degraded,
        "warnings": result.warnings,
        "ad": result.record.to_dict(),
    }


@app.get("/api/ads")
def api_list_top(limit: Optional[int] = None, offset: Optional[int] = None,
                 resolver: ListingResolver = Depends(get_resolver)):
    page = resolver.list_top(limit, offset)
    return {
        "success": True,
        "data": [r.to_dict() for r in page.records],
        "pagination": {"total": page.total, "limit": page.limit, "offset": page.offset},
    }


@app.get("/api/ads/{ad_id}")
def api_get_ad(ad_id: str, resolver: ListingResolver = Depends(get_resolver)):
    record = resolver.get_and_touch(ad_id)
    return {"success": True, "ad": record.to_dict()}


@app.post("/api/ads/{ad_id}/refresh")
def api_refresh_ad(ad_id: str, resolver: ListingResolver = Depends(get_resolver)):
    result = resolver.refresh(ad_id)
    return {
        "success": True,
        "refreshed": result.refreshed,
        "degraded": result.degraded,
        "warnings": result.warnings,
        "ad": result.record.to_dict(),
    }


# ── API: Status ───────────────────────────────────────────────

@app.get("/api/status")
def api_status(resolver: ListingResolver = Depends(get_resolver)):
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "primary_reachable": resolver.store.is_primary_reachable(),
        "mirror_size": len(resolver.store.mirror),
        "parse_cache_size": len(resolver.parse_cache),
        "scheduler": scheduler.get_status(),
    }
