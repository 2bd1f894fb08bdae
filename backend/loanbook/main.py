"""FastAPI application entry point.

This module wires together the API routers, configures middleware and
startup tasks, and exposes the ASGI application object used by the
server.
"""

import os
import logging
import asyncio
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loanbook.routes import (
    auth,
    clients,
    loans,
    verify,
    reports,
    settings,
)
from loanbook.database import create_db_and_tables, async_session
from loanbook.crud import get_settings, expire_stale_verifications

# Basic logging configuration.  The log level can be controlled with an
# environment variable so deployments can adjust verbosity without code
# changes.
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, LOG_LEVEL))
logger = logging.getLogger(__name__)

app = FastAPI(title="Loanbook")

# CORS setup; the verification page is served from another origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def on_startup():
    """Initialize the database and kick off background tasks."""

    await create_db_and_tables()
    asyncio.create_task(daily_verification_sweep())


async def daily_verification_sweep():
    """Background coroutine that expires stale verification tokens once a day."""

    logger.info("Starting daily verification sweep")
    while True:
        try:
            async with async_session() as session:
                settings = await get_settings(session)
                await expire_stale_verifications(
                    session, expiry_days=settings.verification_expiry_days
                )
        except Exception as exc:
            logger.exception("Daily verification sweep failed: %s", exc)
        # Sleep for roughly one day before running again.
        await asyncio.sleep(60 * 60 * 24)


app.include_router(auth.router)
app.include_router(clients.router)
app.include_router(loans.router)
app.include_router(verify.router)
app.include_router(reports.router)
app.include_router(settings.router)


@app.get("/")
async def read_root():
    async with async_session() as session:
        s = await get_settings(session)
        name = s.site_name
    return {"message": f"Welcome to {name} API"}


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler that logs the stack trace once."""
    logger.exception("Unhandled error during request %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "code": "internal_server_error",
            "message": "An unexpected error occurred",
        },
    )
