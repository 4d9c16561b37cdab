"""Status polling for created assets.

Each in-flight asset runs a small state machine::

    PENDING --get_asset--> PENDING | READY | FAILED

``PENDING`` covers an unset phase and every non-terminal phase reported by the
provider. Between two queries the loop sleeps a jittered delay so the items of
a batch do not hit the API in lockstep. Once ``READY`` or ``FAILED`` is
reached the asset is never queried again.

The loop has no attempt limit. A ``PollPolicy.timeout`` turns a stuck asset
into a ``PollTimeoutError`` and a ``stop_event`` aborts the loop at the next
suspension point with ``ImportCancelledError``.
"""

import asyncio
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence

from asset_importer.pipeline.batching import gather_batch
from asset_importer.providers.base import AssetProvider
from asset_importer.schemas import PHASE_FAILED, PHASE_READY, AssetStatus, InFlightItem
from asset_importer.pipeline.observers import ImportObserver
from asset_importer.utils.logging import get_logger


logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class PollTimeoutError(TimeoutError):
    def __init__(self, asset_id: str, elapsed: float) -> None:
        super().__init__(f"asset {asset_id} not terminal after {elapsed:.1f}s")
        self.asset_id = asset_id
        self.elapsed = elapsed


class ImportCancelledError(RuntimeError):
    pass


class PollState(str, Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


def classify(status: Optional[AssetStatus]) -> PollState:
    if status is None:
        return PollState.PENDING
    if status.phase == PHASE_READY:
        return PollState.READY
    if status.phase == PHASE_FAILED:
        return PollState.FAILED
    return PollState.PENDING


@dataclass(frozen=True)
class PollPolicy:
    min_interval: float = 0.2
    max_interval: float = 0.5
    timeout: Optional[float] = None

    def __post_init__(self) -> None:
        if self.min_interval < 0 or self.max_interval < self.min_interval:
            raise ValueError(
                f"invalid poll interval [{self.min_interval}, {self.max_interval})"
            )
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"poll timeout must be positive, got {self.timeout}")

    def next_delay(self, rng: random.Random) -> float:
        # random() is in [0, 1), so the delay never reaches max_interval
        return self.min_interval + rng.random() * (self.max_interval - self.min_interval)


@dataclass(frozen=True)
class PollOutcome:
    item: InFlightItem
    status: AssetStatus
    finished_at: float


def _check_stop(stop_event: Optional[asyncio.Event]) -> None:
    if stop_event is not None and stop_event.is_set():
        raise ImportCancelledError("import cancelled")


async def poll_until_terminal(
    provider: AssetProvider,
    item: InFlightItem,
    policy: PollPolicy = PollPolicy(),
    sleep: Sleep = asyncio.sleep,
    rng: Optional[random.Random] = None,
    clock: Callable[[], float] = time.time,
    stop_event: Optional[asyncio.Event] = None,
    observer: Optional[ImportObserver] = None,
) -> PollOutcome:
    rng = rng or random.Random()
    status: Optional[AssetStatus] = None
    while classify(status) is PollState.PENDING:
        if policy.timeout is not None:
            elapsed = clock() - item.start_time
            if elapsed >= policy.timeout:
                raise PollTimeoutError(item.handle.id, elapsed)
        _check_stop(stop_event)
        await sleep(policy.next_delay(rng))
        _check_stop(stop_event)
        status = await provider.get_asset(item.handle.id)
        if observer is not None:
            observer.status_polled(item, status)
    return PollOutcome(item=item, status=status, finished_at=clock())


async def _poll_isolated(
    provider: AssetProvider,
    item: InFlightItem,
    clock: Callable[[], float],
    **kwargs,
) -> PollOutcome:
    try:
        return await poll_until_terminal(provider, item, clock=clock, **kwargs)
    except ImportCancelledError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.warning("polling %s failed: %s", item.handle.id, exc)
        status = AssetStatus(
            id=item.handle.id,
            phase=PHASE_FAILED,
            errorMessage=str(exc) or exc.__class__.__name__,
        )
        return PollOutcome(item=item, status=status, finished_at=clock())


async def poll_batch(
    provider: AssetProvider,
    items: Sequence[InFlightItem],
    policy: PollPolicy = PollPolicy(),
    sleep: Sleep = asyncio.sleep,
    rng: Optional[random.Random] = None,
    clock: Callable[[], float] = time.time,
    stop_event: Optional[asyncio.Event] = None,
    observer: Optional[ImportObserver] = None,
    isolate_failures: bool = False,
) -> List[PollOutcome]:
    """Poll every item concurrently until all are terminal. Output order matches ``items``."""
    rng = rng or random.Random()
    kwargs = dict(
        policy=policy, sleep=sleep, rng=rng, stop_event=stop_event, observer=observer
    )
    if isolate_failures:
        coros = [_poll_isolated(provider, item, clock, **kwargs) for item in items]
    else:
        coros = [poll_until_terminal(provider, item, clock=clock, **kwargs) for item in items]
    return await gather_batch(coros)
