"""
Height tracking loop.

The synchronizer owns the watermark, the highest height already attempted.
On every tick it reads the chain tip and walks each height in
(watermark, tip] in ascending order, one at a time. A failure on one height
is logged and never stops the rest of the gap. Once the gap has been
attempted the watermark moves to the tip, so a failed height is not
retried later in the same run.
"""

import enum
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from .errors import PushError, StorageError, TransientFetchError

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SyncState(enum.Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    TERMINATED = "terminated"


class HeightSynchronizer:
    def __init__(
        self,
        reader,
        ledger,
        watermark: int,
        interval: float = 3,
        exporter=None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utc_now,
    ):
        if watermark < 0:
            raise ValueError(f"watermark must not be negative, got {watermark}")
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.reader = reader
        self.ledger = ledger
        self.exporter = exporter
        self.interval = interval
        self.clock = clock
        self.now = now
        self.state = SyncState.IDLE
        self.last_success: Optional[float] = None
        self._watermark = watermark

    @property
    def watermark(self) -> int:
        return self._watermark

    def _advance(self, height: int):
        if height > self._watermark:
            self._watermark = height

    def run(self, stop_event: threading.Event):
        """Poll every `interval` seconds until `stop_event` is set."""
        logger.info(f"Starting from block height: {self.watermark}")
        next_tick = self.clock() + self.interval
        try:
            while not stop_event.wait(max(0.0, next_tick - self.clock())):
                try:
                    self.run_cycle(stop_event)
                except Exception as e:
                    logger.error(f"Error in sync cycle at height {self.watermark}: {e}")
                next_tick += self.interval
                now = self.clock()
                if next_tick <= now:
                    # Ticks that fell inside a long cycle collapse into one.
                    skipped = int((now - next_tick) // self.interval) + 1
                    next_tick += skipped * self.interval
        finally:
            self.state = SyncState.TERMINATED
            logger.info(f"Synchronizer stopped at block height: {self.watermark}")

    def run_cycle(self, stop_event: Optional[threading.Event] = None) -> int:
        """Process one tick and return the number of observations recorded."""
        try:
            tip = self.reader.current_height()
        except TransientFetchError as e:
            logger.warning(f"failed to get block number: {e}")
            return 0
        self.last_success = self.clock()

        if tip <= self.watermark:
            logger.debug(f"No new blocks: tip {tip}, watermark {self.watermark}")
            return 0

        self.state = SyncState.SYNCING
        recorded = 0
        last_attempted = self.watermark
        try:
            for height in range(self.watermark + 1, tip + 1):
                if stop_event is not None and stop_event.is_set():
                    logger.info(
                        f"Stop requested, leaving heights {height}..{tip} for a later run"
                    )
                    break
                last_attempted = height
                try:
                    if self._process_height(height):
                        recorded += 1
                except Exception:
                    logger.exception(f"Unexpected error processing height {height}")
        finally:
            self._advance(last_attempted)
            if self.state is SyncState.SYNCING:
                self.state = SyncState.IDLE
        return recorded

    def _process_height(self, height: int) -> bool:
        try:
            header = self.reader.header_at(height)
        except TransientFetchError as e:
            logger.warning(f"failed to get block header for height {height}: {e}")
            return False

        try:
            inserted = self.ledger.record_observation(
                header.number, header.difficulty, self.now()
            )
        except StorageError as e:
            logger.warning(str(e))
            return False
        if inserted:
            logger.info(
                f"Inserted data for block {header.number}: difficulty={header.difficulty}"
            )
        else:
            logger.info(f"Block {header.number} already recorded, skipping insert")

        if self.exporter is not None:
            self.exporter.set_gauge(header.difficulty)
            try:
                self.exporter.push()
            except PushError as e:
                logger.warning(str(e))
        return True
