"""Wall-clock aligned scheduler driving several cadences from one base tick.

Every boundary is derived from the top of the current UTC hour, so a coarser
cadence always lands on a tick of the finest one. Nothing is accumulated
between ticks: each cycle re-reads the clock, floors it to the finest cadence
and decides which feeds are due from that instant alone.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from rate_publisher.core.time_utils import utc_now

_HOUR_MS = 3_600_000

TickCallback = Callable[[], Awaitable[None]]
Clock = Callable[[], datetime]

logger = logging.getLogger(__name__)


def hour_epoch(now: datetime) -> datetime:
    return now.replace(minute=0, second=0, microsecond=0)


def _offset_us(now: datetime) -> int:
    return (now - hour_epoch(now)) // timedelta(microseconds=1)


def next_boundary(now: datetime, cadence_ms: int) -> datetime:
    """Smallest instant >= now that is a whole number of cadences past the top of the hour."""

    cadence_us = cadence_ms * 1000
    ticks = -(-_offset_us(now) // cadence_us)
    return hour_epoch(now) + timedelta(microseconds=ticks * cadence_us)


def floor_boundary(now: datetime, cadence_ms: int) -> datetime:
    """Largest instant <= now that is a whole number of cadences past the top of the hour."""

    cadence_us = cadence_ms * 1000
    ticks = _offset_us(now) // cadence_us
    return hour_epoch(now) + timedelta(microseconds=ticks * cadence_us)


def delay_until_next_boundary(now: datetime, cadence_ms: int) -> timedelta:
    return next_boundary(now, cadence_ms) - now


def tick_index(at: datetime, base_ms: int) -> int:
    """Number of base ticks between the top of the hour and ``at``."""

    return _offset_us(at) // (base_ms * 1000)


def is_due(at: datetime, cadence_ms: int, base_ms: int) -> bool:
    """A cadence of k base ticks fires on tick n iff n mod k == 0."""

    return tick_index(at, base_ms) % (cadence_ms // base_ms) == 0


@dataclass(slots=True)
class ScheduleState:
    """Per-registration schedule, always recomputed from the clock."""

    name: str
    cadence_ms: int
    callback: TickCallback
    next_fire_at: datetime | None = None


class CadenceScheduler:
    """Fire registered callbacks at aligned wall-clock boundaries.

    Cadences must divide one hour, and each must be a multiple of the finest
    registered cadence. Callbacks run one after another, finest cadence first,
    in registration order among equals.
    """

    def __init__(
        self,
        clock: Clock = utc_now,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._clock = clock
        self._sleep_override = sleep
        self._registrations: list[ScheduleState] = []
        self._stop_event = asyncio.Event()

    @property
    def base_cadence_ms(self) -> int:
        if not self._registrations:
            raise RuntimeError("no cadences registered")
        return min(state.cadence_ms for state in self._registrations)

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def states(self) -> tuple[ScheduleState, ...]:
        return tuple(self._registrations)

    def register(self, name: str, cadence_ms: int, callback: TickCallback) -> ScheduleState:
        if cadence_ms <= 0 or _HOUR_MS % cadence_ms != 0:
            raise ValueError(f"cadence {cadence_ms}ms for {name} must evenly divide one hour")

        state = ScheduleState(name=name, cadence_ms=cadence_ms, callback=callback)
        self._registrations.append(state)

        base_ms = self.base_cadence_ms
        for existing in self._registrations:
            if existing.cadence_ms % base_ms != 0:
                self._registrations.remove(state)
                raise ValueError(
                    f"cadence {existing.cadence_ms}ms for {existing.name} "
                    f"is not a multiple of the base cadence {base_ms}ms"
                )

        # Stable sort keeps registration order among equal cadences.
        self._registrations.sort(key=lambda item: item.cadence_ms)
        return state

    def stop(self) -> None:
        """Prevent further ticks from invoking callbacks; running callbacks finish."""

        if self._stop_event.is_set():
            return
        logger.info("scheduler_stop_requested")
        self._stop_event.set()

    async def _sleep(self, seconds: float) -> None:
        if self._sleep_override is not None:
            await self._sleep_override(seconds)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def _refresh_next_fire(self, now: datetime) -> None:
        for state in self._registrations:
            state.next_fire_at = next_boundary(now, state.cadence_ms)

    async def _fire(self, tick_at: datetime) -> None:
        base_ms = self.base_cadence_ms
        due = [state for state in self._registrations if is_due(tick_at, state.cadence_ms, base_ms)]
        logger.info(
            "scheduler_tick",
            extra={
                "tick_at": tick_at.isoformat(),
                "tick_index": tick_index(tick_at, base_ms),
                "due": [state.name for state in due],
            },
        )

        for state in due:
            if self.stopped:
                return
            try:
                await state.callback()
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "scheduler_callback_failed",
                    extra={"feed": state.name, "error": str(exc)},
                    exc_info=True,
                )

    async def run(self) -> None:
        """Tick until ``stop`` is called."""

        base_ms = self.base_cadence_ms
        target = next_boundary(self._clock(), base_ms)
        self._refresh_next_fire(target)

        while not self.stopped:
            now = self._clock()
            if now < target:
                await self._sleep((target - now) / timedelta(seconds=1))
                continue

            # A suspended process fires once for the latest boundary it missed.
            tick_at = floor_boundary(now, base_ms)
            if tick_at > target:
                logger.warning(
                    "scheduler_ticks_skipped",
                    extra={"expected": target.isoformat(), "tick_at": tick_at.isoformat()},
                )

            await self._fire(tick_at)

            target = tick_at + timedelta(milliseconds=base_ms)
            self._refresh_next_fire(target)

        logger.info("scheduler_stopped")
