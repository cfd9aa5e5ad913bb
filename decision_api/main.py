"""
Decision API application.

Wires the settlement core and admin access into one FastAPI app
and maps the settlement error taxonomy onto HTTP responses:

    UnauthorizedError      -> 401
    PermissionDeniedError  -> 403
    DecisionConflictError  -> 400
    anything else          -> 500
"""

import logging
import random
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from admin_access.gate import AccessControl
from admin_access.identity import AdminDirectory, JwtTokenVerifier
from admin_access.resolver import AssignmentResolver
from core.clock import ClockProtocol, ClockFactory
from core.exceptions import (
    UnauthorizedError,
    PermissionDeniedError,
    DecisionConflictError,
)
from database.engine import SessionFactoryType
from decision_api.router import router
from decision_api.service import DecisionService
from settlement.config import SettlementConfig
from settlement.service import build_settlement_services

logger = logging.getLogger(__name__)


# =============================================================
# ERROR MAPPING
# =============================================================

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(UnauthorizedError)
    async def unauthorized_handler(request: Request, exc: UnauthorizedError):
        return _error(401, exc.message)

    @app.exception_handler(PermissionDeniedError)
    async def permission_denied_handler(request: Request, exc: PermissionDeniedError):
        return _error(403, exc.message)

    @app.exception_handler(DecisionConflictError)
    async def conflict_handler(request: Request, exc: DecisionConflictError):
        return _error(400, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError):
        for err in exc.errors():
            if "tradeId" in err.get("loc", ()):
                return _error(400, "Trade ID is required")
        return _error(400, "Invalid request")

    @app.exception_handler(Exception)
    async def unexpected_handler(request: Request, exc: Exception):
        logger.error(f"Unexpected error on {request.url.path}: {exc}", exc_info=True)
        return _error(500, str(exc) or type(exc).__name__)


# =============================================================
# APPLICATION FACTORY
# =============================================================

def create_app(
    config: Optional[SettlementConfig] = None,
    session_factory: Optional[SessionFactoryType] = None,
    clock: Optional[ClockProtocol] = None,
    rng: Optional[random.Random] = None,
) -> FastAPI:
    """Build the Decision API with its own settlement component graph."""
    config = config or SettlementConfig.from_env()
    clock = clock or ClockFactory.get_clock()

    settlement = build_settlement_services(config, session_factory, clock, rng)
    resolver = AssignmentResolver(
        session_factory,
        clock=clock,
        ttl_seconds=config.access.assignment_cache_ttl_seconds,
    )
    access = AccessControl(AdminDirectory(session_factory), resolver)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if config.run_scheduler_in_api:
            await settlement.scheduler.start()
        yield
        if settlement.scheduler.is_running:
            await settlement.scheduler.stop()

    app = FastAPI(
        title="Trade Settlement API",
        description="Admin decisions on pending trades, scoped to each admin's assigned users.",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Restrict in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settlement = settlement
    app.state.access = access
    app.state.token_verifier = JwtTokenVerifier.from_config(config.access)
    app.state.decision_service = DecisionService(access, settlement.state_machine, session_factory)

    register_exception_handlers(app)
    app.include_router(router)

    @app.get("/")
    def root():
        return {"status": "ok", "message": "Trade Settlement API is running"}

    return app
