"""
Decision API Package.

Admin-facing endpoints that record a win/lose decision on a
pending trade. Money only moves when the settlement scheduler
resolves the trade.
"""

from decision_api.service import DecisionService
from decision_api.router import router
from decision_api.main import create_app, register_exception_handlers

__all__ = [
    "DecisionService",
    "router",
    "create_app",
    "register_exception_handlers",
]
