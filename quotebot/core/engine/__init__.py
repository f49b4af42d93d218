"""Order cycle coordination and the trading loop."""

from .order_cycle import CycleResult, CycleState, LegResult, OrderCycleCoordinator
from .trading_loop import TradingLoopScheduler

__all__ = [
    'CycleResult',
    'CycleState',
    'LegResult',
    'OrderCycleCoordinator',
    'TradingLoopScheduler',
]
