"""Database model type definitions."""

from src.models.print_job import AttemptStatus, OrderInfo, PrintJobAttempt, RetrySnapshot
from src.models.printnode_event import PrintNodeEvent

__all__ = [
    "AttemptStatus",
    "OrderInfo",
    "PrintJobAttempt",
    "PrintNodeEvent",
    "RetrySnapshot",
]
