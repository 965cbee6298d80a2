from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from ticketledger.types import TicketData

# Tickets in the tests expire a day after this instant.
BASE_TIME = datetime(2026, 1, 25, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock that advances one second per call."""

    def __init__(self, start: datetime = BASE_TIME, step: timedelta = timedelta(seconds=1)) -> None:
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value


def make_ticket(ticket_id: str, amount: int | str = 25, currency: str = "GMD") -> TicketData:
    return TicketData(
        ticket_id=ticket_id,
        amount=Decimal(str(amount)),
        currency=currency,
        expires_at=int(BASE_TIME.timestamp()) + 24 * 60 * 60,
    )
