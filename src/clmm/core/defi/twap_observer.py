"""
Time-weighted average price observer.

Pools push a ``PriceSample`` to their observers after every committed swap.
The observer averages the *tick* over time, which is the geometric mean of
the price, and converts the mean tick back to a sqrt price.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Protocol

from ..config import TWAP_WINDOW_SECONDS
from .fixed_point import tick_to_sqrt_price

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceSample:
    """Read-only post-swap price observation."""
    sqrt_price: int
    tick: int
    timestamp: int


class PriceObserver(Protocol):
    def observe(self, sample: PriceSample) -> None:
        ...


class TwapObserver:
    def __init__(self, window_size_seconds: int = TWAP_WINDOW_SECONDS):
        if not isinstance(window_size_seconds, int) or window_size_seconds <= 0:
            raise ValueError("Window size must be a positive integer.")
        self.window_size_seconds = window_size_seconds
        # Ordered by timestamp; at most one sample per timestamp
        self.samples: list[PriceSample] = []

    def observe(self, sample: PriceSample) -> None:
        """
        Record a sample. A later sample with the same timestamp replaces the
        earlier one, so several swaps in one tick of the clock count once.
        """
        if not isinstance(sample.timestamp, int) or sample.timestamp < 0:
            raise ValueError("Timestamp must be a non-negative integer.")
        if self.samples and sample.timestamp < self.samples[-1].timestamp:
            raise ValueError("Samples must arrive in timestamp order.")

        self._clean_old_data(sample.timestamp)
        if self.samples and self.samples[-1].timestamp == sample.timestamp:
            self.samples[-1] = sample
        else:
            self.samples.append(sample)
        logger.debug(
            "Recorded tick %d at %s (total points %d)",
            sample.tick,
            sample.timestamp,
            len(self.samples),
        )

    def _clean_old_data(self, current_timestamp: int) -> None:
        """Drop samples before the window, keeping the one in force at its start."""
        cutoff_time = current_timestamp - self.window_size_seconds
        first_in_window = 0
        for index, sample in enumerate(self.samples):
            if sample.timestamp <= cutoff_time:
                first_in_window = index
            else:
                break
        if first_in_window:
            del self.samples[:first_in_window]

    def time_weighted_tick(self, current_timestamp: int | None = None) -> int | None:
        """
        Time-weighted average tick over the window ending at ``current_timestamp``.

        Returns None when no sample covers any part of the window.
        """
        now = current_timestamp if current_timestamp is not None else int(time.time())
        window_start = now - self.window_size_seconds

        total_weighted_tick = 0
        total_time_weight = 0
        for i, sample in enumerate(self.samples):
            segment_end = self.samples[i + 1].timestamp if i < len(self.samples) - 1 else now
            segment_start = max(sample.timestamp, window_start)
            segment_end = min(segment_end, now)
            if segment_end > segment_start:
                total_weighted_tick += sample.tick * (segment_end - segment_start)
                total_time_weight += segment_end - segment_start

        if total_time_weight == 0:
            return None
        # Floor division rounds toward negative infinity
        return total_weighted_tick // total_time_weight

    def twap_sqrt_price(self, current_timestamp: int | None = None) -> int | None:
        tick = self.time_weighted_tick(current_timestamp)
        return None if tick is None else tick_to_sqrt_price(tick)
