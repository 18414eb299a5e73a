"""
Quote Monitor Service

Tracks outstanding mint quotes and mints their proofs as soon as the
invoices are paid. Uses an APScheduler interval job that exists only while
at least one quote is tracked: registering the first quote schedules it and
removing the last one unschedules it.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.models.wallet_responses import QuotePoolStatus
from ledger_engine.exceptions import QuoteAlreadyIssuedError

if TYPE_CHECKING:
    from .wallet_service import WalletService

logger = logging.getLogger(__name__)

JOB_ID = "check_mint_quotes"

# Ticks are not serialized; a slow tick may still be running when the next fires.
MAX_OVERLAPPING_TICKS = 32


@dataclass
class TrackedQuote:
    quote_id: str
    amount: int
    expiry: int


class QuoteMonitor:
    """
    Background minting for paid quotes.

    Each tick:
    1. Drops quotes past their expiry without checking them again
    2. Takes up to ``max_concurrent_checks`` quotes not already being checked
    3. Checks each one; paid quotes are minted and dropped, issued quotes
       are dropped, failures stay tracked for the next tick

    Quotes checked in a tick move to the back of the queue, so a pool larger
    than the fan-out cap is visited round-robin.
    """

    def __init__(
        self,
        wallet: "WalletService",
        check_interval_seconds: float = 5.0,
        max_concurrent_checks: int = 5,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize QuoteMonitor.

        Args:
            wallet: Wallet whose check_mint_quote/mint_proofs drive each check
            check_interval_seconds: Seconds between ticks
            max_concurrent_checks: Maximum quotes checked per tick
            clock: Source of the current Unix time, compared against expiry
        """
        self.wallet = wallet
        self.check_interval_seconds = check_interval_seconds
        self.max_concurrent_checks = max_concurrent_checks
        self._clock = clock

        self._quotes: "OrderedDict[str, TrackedQuote]" = OrderedDict()
        self._checking: set[str] = set()
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def is_running(self) -> bool:
        """True while the tick job is scheduled."""
        return self._scheduler is not None and self._scheduler.get_job(JOB_ID) is not None

    def tracked_quote_ids(self) -> list[str]:
        return list(self._quotes)

    def add_quote(self, quote_id: str, amount: int, expiry: int) -> None:
        """
        Track a quote. Starts the tick job if the pool was empty.

        Must be called from the event loop the ticks should run on.
        """
        self._quotes[quote_id] = TrackedQuote(quote_id=quote_id, amount=amount, expiry=expiry)
        logger.info(f"Tracking mint quote {quote_id} ({amount}), {len(self._quotes)} in pool")

        if not self.is_running:
            self._start()

    def remove_quote(self, quote_id: str) -> bool:
        """Stop tracking a quote. Stops the tick job once the pool is empty."""
        removed = self._quotes.pop(quote_id, None) is not None

        if not self._quotes:
            self._stop()

        return removed

    def _start(self) -> None:
        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop())

        if not self._scheduler.running:
            self._scheduler.start()

        self._scheduler.add_job(
            self.check_quotes,
            "interval",
            seconds=self.check_interval_seconds,
            id=JOB_ID,
            name="Check tracked mint quotes",
            replace_existing=True,
            max_instances=MAX_OVERLAPPING_TICKS,
            coalesce=False,
        )
        logger.info(f"Quote monitor started: every {self.check_interval_seconds}s")

    def _stop(self) -> None:
        if self.is_running:
            self._scheduler.remove_job(JOB_ID)
            logger.info("Quote monitor stopped: no quotes left to track")

    def _purge_expired(self) -> int:
        now = self._clock()
        expired = [qid for qid, quote in self._quotes.items() if now > quote.expiry]

        for quote_id in expired:
            del self._quotes[quote_id]

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired quotes from pool")
        if not self._quotes:
            self._stop()

        return len(expired)

    async def check_quotes(self) -> None:
        """Run one tick. Never raises."""
        self._purge_expired()

        batch = [
            quote
            for quote in self._quotes.values()
            if quote.quote_id not in self._checking
        ][: self.max_concurrent_checks]

        if not batch:
            return

        for quote in batch:
            self._checking.add(quote.quote_id)
            self._quotes.move_to_end(quote.quote_id)

        try:
            await asyncio.gather(
                *(self._check_and_mint(quote) for quote in batch),
                return_exceptions=True,
            )
        finally:
            for quote in batch:
                self._checking.discard(quote.quote_id)

    async def _check_and_mint(self, quote: TrackedQuote) -> None:
        try:
            status = await self.wallet.check_mint_quote(quote.quote_id)

            if status.can_mint:
                logger.info(f"Quote {quote.quote_id} is paid, minting proofs...")
                await self.wallet.mint_proofs(quote.quote_id, quote.amount)
                logger.info(f"Successfully minted proofs for quote {quote.quote_id}")
                self.remove_quote(quote.quote_id)

            elif status.is_issued:
                logger.info(f"Quote {quote.quote_id} is already issued, removing from pool")
                self.remove_quote(quote.quote_id)

        except QuoteAlreadyIssuedError:
            logger.info(f"Quote {quote.quote_id} was minted elsewhere, removing from pool")
            self.remove_quote(quote.quote_id)

        except Exception as e:
            # Left tracked; retried next tick until it expires.
            logger.error(f"Error checking/minting quote {quote.quote_id}: {e}")

    def get_pool_status(self) -> QuotePoolStatus:
        """
        Get current monitor status for health checks.

        Returns:
            QuotePoolStatus: Pool size, running state and next tick time
        """
        job = self._scheduler.get_job(JOB_ID) if self._scheduler is not None else None
        return QuotePoolStatus(
            active=len(self._quotes),
            running=job is not None,
            checking=len(self._checking),
            next_run=str(job.next_run_time) if job is not None else None,
        )

    def close(self) -> None:
        """Forget all quotes and shut the scheduler down."""
        self._quotes.clear()
        self._stop()

        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
