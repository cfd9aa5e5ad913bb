"""
FastAPI Router for Trade Decision Endpoints.

Provides the admin console's settlement surface:
- Set a pending trade's outcome to win
- Set a pending trade's outcome to loss
- List trades visible to the calling admin

Decision endpoints never touch balances; the settlement
scheduler applies the outcome once execute_at has passed.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from admin_access.identity import JwtTokenVerifier
from settlement.types import TradeDecision
from decision_api.schemas import (
    DecisionRequest,
    DecisionResponse,
    DecisionData,
    ErrorResponse,
    TradeListResponse,
    TradeSummary,
    TradeStatusEnum,
)
from decision_api.service import DecisionService

router = APIRouter(tags=["Trade Decisions"])

AUTH_SCHEME = HTTPBearer(auto_error=False)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


# =============================================================
# HELPER: Dependencies
# =============================================================

def get_token_verifier(request: Request) -> JwtTokenVerifier:
    return request.app.state.token_verifier


def get_decision_service(request: Request) -> DecisionService:
    return request.app.state.decision_service


def get_current_admin_id(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(AUTH_SCHEME),
    verifier: JwtTokenVerifier = Depends(get_token_verifier),
) -> str:
    """Subject of the verified bearer token (UnauthorizedError otherwise)."""
    return verifier.verify(creds.credentials if creds else None)


# =============================================================
# DECISION ENDPOINTS
# =============================================================

def _decide(
    decision: TradeDecision,
    body: DecisionRequest,
    admin_id: str,
    service: DecisionService,
) -> DecisionResponse:
    result = service.set_decision(admin_id, body.trade_id, decision)
    return DecisionResponse(
        data=DecisionData(
            id=result.trade_id,
            status=result.status.value,
            decision=result.decision.value,
            execute_at=result.execute_at,
        ),
        message=(
            f"Trade decision set to {decision.value.upper()}. "
            f"Will execute at {result.execute_at.isoformat()}"
        ),
    )


@router.post("/set-trade-win", response_model=DecisionResponse, responses=ERROR_RESPONSES)
def set_trade_win(
    body: DecisionRequest,
    admin_id: str = Depends(get_current_admin_id),
    service: DecisionService = Depends(get_decision_service),
):
    """
    Mark a pending trade to be settled as a win.

    The trade stays pending until its execute_at passes.
    """
    return _decide(TradeDecision.WIN, body, admin_id, service)


@router.post("/set-trade-loss", response_model=DecisionResponse, responses=ERROR_RESPONSES)
def set_trade_loss(
    body: DecisionRequest,
    admin_id: str = Depends(get_current_admin_id),
    service: DecisionService = Depends(get_decision_service),
):
    """Mark a pending trade to be settled as a loss."""
    return _decide(TradeDecision.LOSE, body, admin_id, service)


# =============================================================
# LISTING
# =============================================================

@router.get("/trades", response_model=TradeListResponse, responses=ERROR_RESPONSES)
def list_trades(
    status_filter: Optional[TradeStatusEnum] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    admin_id: str = Depends(get_current_admin_id),
    service: DecisionService = Depends(get_decision_service),
):
    """
    Trades the calling admin may see.

    Super admins see every trade; regular admins only trades of
    their assigned users (none when they have no assignments).
    """
    trades = service.list_visible_trades(
        admin_id,
        status=status_filter.value if status_filter else None,
        limit=limit,
    )
    return TradeListResponse(
        trades=[TradeSummary.model_validate(t) for t in trades],
        count=len(trades),
    )
