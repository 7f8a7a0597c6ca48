# src/metroranta/api/app.py
"""
FastAPI application wiring.

Creates the `FastAPI` instance, maps domain errors to HTTP responses, applies CORS for
the map frontend and includes the routes. Endpoint logic lives in
`metroranta.api.routes`; the amenity lookup itself in `metroranta.finder`.
"""

from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from metroranta.core.errors import EmptyRouteError, InvalidCoordinateError
from metroranta.core.logging import configure_logging

from .routes import ROUTE_NOT_READY, router

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Metroranta API", version="0.1.0")


@app.exception_handler(EmptyRouteError)
async def _empty_route_handler(request: Request, exc: EmptyRouteError) -> JSONResponse:
    logger.warning("%s %s: no route loaded", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": dict(ROUTE_NOT_READY)})


@app.exception_handler(InvalidCoordinateError)
async def _invalid_coordinate_handler(request: Request, exc: InvalidCoordinateError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": {"code": "VALIDATION_ERROR", "message": str(exc)}})


# The map frontend is served from its own origin.
# - METRORANTA_CORS_ORIGINS="https://example.org,https://www.example.org" pins the list
# - without it, localhost origins are allowed unless METRORANTA_CORS_ALLOW_LOCAL=0
_origins = [o.strip() for o in os.getenv("METRORANTA_CORS_ORIGINS", "").split(",") if o.strip()]
_allow_local = os.getenv("METRORANTA_CORS_ALLOW_LOCAL", "1").strip().lower() not in {"0", "false", "no", "n"}
_local_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

if _origins or _allow_local:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_origins,
        allow_origin_regex=None if _origins else _local_regex,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

app.include_router(router)
