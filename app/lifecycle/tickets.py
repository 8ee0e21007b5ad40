"""
Ticket IDs: PREFIX-FIX-YYYYMMDD-NNNN.
The sequence is the day's report count plus one, so allocation must cope
with concurrent callers reading the same count.
"""

import re
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable, TypeVar

import structlog
from pydantic import BaseModel

from app.clock import Clock
from app.errors import ConflictError, ValidationError
from app.observability.metrics import ticket_allocation_retries_total
from app.store.base import ReportStore, TicketIdTaken

logger = structlog.get_logger(__name__)

T = TypeVar("T")

TICKET_PATTERN = re.compile(r"^(?P<prefix>[A-Z0-9]+)-FIX-(?P<date>\d{8})-(?P<seq>\d{4})$")


class ParsedTicket(BaseModel):
    prefix: str
    date: date
    sequence: int
    date_string: str


def format_ticket_id(prefix: str, day: date, sequence: int) -> str:
    if not 1 <= sequence <= 9999:
        raise ValidationError(f"Ticket sequence out of range: {sequence}")
    return f"{prefix}-FIX-{day:%Y%m%d}-{sequence:04d}"


def parse_ticket_id(ticket_id: str) -> ParsedTicket:
    m = TICKET_PATTERN.match(ticket_id or "")
    if not m:
        raise ValidationError(f"Invalid ticket ID format: {ticket_id!r}")
    date_string = m.group("date")
    try:
        day = datetime.strptime(date_string, "%Y%m%d").date()
    except ValueError as e:
        raise ValidationError(f"Invalid ticket ID date: {date_string}") from e
    return ParsedTicket(
        prefix=m.group("prefix"),
        date=day,
        sequence=int(m.group("seq")),
        date_string=date_string,
    )


def is_valid_ticket_id(ticket_id: str) -> bool:
    try:
        parse_ticket_id(ticket_id)
        return True
    except ValidationError:
        return False


class TicketAllocator:
    """
    Allocates ticket IDs by insert-and-retry.

    Each attempt re-reads today's count and tries
    max(count + 1, last tried + 1). A unique conflict on insert moves on to
    the next attempt; after max_attempts the allocation fails with
    ConflictError.
    """

    def __init__(self, store: ReportStore, clock: Clock, prefix: str, max_attempts: int = 10):
        self.store = store
        self.clock = clock
        self.prefix = prefix
        self.max_attempts = max_attempts

    async def next_sequence(self, day_start: datetime, floor: int) -> int:
        today_count = await self.store.count_created_between(day_start, day_start + timedelta(days=1))
        return max(today_count + 1, floor)

    async def allocate(self, insert: Callable[[str], Awaitable[T]]) -> T:
        """
        Run insert(ticket_id) until it succeeds.
        insert must raise TicketIdTaken when the ID is already used.
        """
        now = self.clock.now()
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        floor = 1

        for attempt in range(self.max_attempts):
            sequence = await self.next_sequence(day_start, floor)
            ticket_id = format_ticket_id(self.prefix, now.date(), sequence)
            try:
                return await insert(ticket_id)
            except TicketIdTaken:
                ticket_allocation_retries_total.inc()
                logger.info("ticket_id_collision", ticket_id=ticket_id, attempt=attempt + 1)
                floor = sequence + 1

        logger.error("ticket_allocation_exhausted", attempts=self.max_attempts)
        raise ConflictError(
            f"Failed to allocate a unique ticket ID after {self.max_attempts} attempts",
            error_code="CONFLICT_002",
        )
