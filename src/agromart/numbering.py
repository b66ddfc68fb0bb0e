"""Human-readable order numbers."""

import logging
import time
from typing import Callable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .tables import OrderSequence

logger = logging.getLogger(__name__)

ORDER_SEQUENCE = "orders"
SEQUENCE_WIDTH = 4


def format_order_number(timestamp_ms: int, sequence: int) -> str:
    """Format as ORD-<epoch millis>-<zero padded sequence>."""
    return f"ORD-{timestamp_ms}-{sequence:0{SEQUENCE_WIDTH}d}"


class OrderNumberGenerator:
    """
    Hands out order numbers from a counter row.

    The counter is bumped with an UPDATE inside the caller's transaction, so
    two checkouts never read the same value and a rolled-back checkout gives
    its number back.
    """

    def __init__(
        self,
        name: str = ORDER_SEQUENCE,
        clock_ms: Callable[[], int] = lambda: time.time_ns() // 1_000_000,
    ):
        self.name = name
        self.clock_ms = clock_ms

    def _bump(self, session: Session) -> int:
        """Increment the counter row; returns the number of rows updated."""
        result = session.execute(
            update(OrderSequence)
            .where(OrderSequence.name == self.name)
            .values(value=OrderSequence.value + 1)
        )
        return result.rowcount

    def next_value(self, session: Session) -> int:
        if not self._bump(session):
            try:
                with session.begin_nested():
                    session.add(OrderSequence(name=self.name, value=1))
                    session.flush()
                return 1
            except IntegrityError:
                # Another transaction created the row between our UPDATE and INSERT.
                logger.info("order_sequence_created_concurrently name=%s", self.name)
                self._bump(session)
        return session.scalars(
            select(OrderSequence.value).where(OrderSequence.name == self.name)
        ).one()

    def next_number(self, session: Session) -> str:
        return format_order_number(self.clock_ms(), self.next_value(session))
