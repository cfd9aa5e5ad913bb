"""
Pydantic Schemas for the Decision API.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


# =============================================================
# ENUMS
# =============================================================

class DecisionEnum(str, Enum):
    WIN = "win"
    LOSE = "lose"


class TradeStatusEnum(str, Enum):
    PENDING = "pending"
    WIN = "win"
    LOSE = "lose"


# =============================================================
# DECISION
# =============================================================

class DecisionRequest(BaseModel):
    """Body of set-trade-win / set-trade-loss."""
    trade_id: str = Field(..., alias="tradeId", min_length=1)

    class Config:
        populate_by_name = True


class DecisionData(BaseModel):
    id: str
    status: TradeStatusEnum
    decision: DecisionEnum
    execute_at: Optional[datetime] = None


class DecisionResponse(BaseModel):
    success: bool = True
    data: DecisionData
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str


# =============================================================
# TRADE LISTING
# =============================================================

class TradeSummary(BaseModel):
    """Trade as shown in the admin console."""
    id: str
    user_id: str
    symbol: str
    direction: str
    stake_amount: Decimal
    leverage: int
    profit_rate: Optional[Decimal] = None

    status: TradeStatusEnum
    decision: Optional[DecisionEnum] = None
    execute_at: Optional[datetime] = None
    modified_by_admin: bool = False

    result: Optional[str] = None
    profit_loss_amount: Optional[Decimal] = None
    completed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class TradeListResponse(BaseModel):
    trades: List[TradeSummary]
    count: int
