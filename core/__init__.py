"""
Core Module Package.

Infrastructure shared by every settlement package.

Components:
- clock: Injectable time source
- exceptions: Settlement error taxonomy
"""

from .clock import ClockProtocol, SystemClock, MockClock, ClockFactory
from .exceptions import SettlementException

__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ClockFactory",
    "SettlementException",
]
