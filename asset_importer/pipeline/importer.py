import asyncio
import random
import time
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Sequence

from asset_importer.config import settings
from asset_importer.providers.base import AssetProvider
from asset_importer.schemas import InFlightItem, MediaDescriptor, MediaResult
from asset_importer.pipeline.batching import BATCH_SIZE, batch_count, iter_batches
from asset_importer.pipeline.checkpoint import CheckpointWriter, remaining_after_checkpoint
from asset_importer.pipeline.observers import ImportObserver
from asset_importer.pipeline.polling import ImportCancelledError, PollPolicy, Sleep, poll_batch
from asset_importer.pipeline.results import ResultSet, build_result
from asset_importer.pipeline.upload import upload_batch


@dataclass(frozen=True)
class ImportOptions:
    batch_size: int = BATCH_SIZE
    poll_min_interval: float = 0.2
    poll_max_interval: float = 0.5
    poll_timeout: Optional[float] = None
    isolate_failures: bool = False

    @classmethod
    def from_settings(cls, **overrides) -> "ImportOptions":
        options = cls(
            batch_size=settings.batch_size,
            poll_min_interval=settings.poll_min_interval_sec,
            poll_max_interval=settings.poll_max_interval_sec,
            poll_timeout=settings.poll_timeout_sec,
        )
        return replace(options, **{k: v for k, v in overrides.items() if v is not None})

    def poll_policy(self) -> PollPolicy:
        return PollPolicy(
            min_interval=self.poll_min_interval,
            max_interval=self.poll_max_interval,
            timeout=self.poll_timeout,
        )


class BatchImporter:
    """Registers media descriptors as remote assets, one batch at a time.

    Batches run strictly in sequence. Inside a batch every asset is created
    concurrently, then every asset is polled concurrently until terminal. After
    each batch the complete result list is written through ``writer``, which
    is the recovery point if the process dies: at most one batch of work is lost.

    Errors are not retried here. They reach the caller of :meth:`run` and the
    last checkpoint stays on disk.
    """

    def __init__(
        self,
        provider: AssetProvider,
        writer: CheckpointWriter,
        options: ImportOptions = ImportOptions(),
        observer: Optional[ImportObserver] = None,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        if options.batch_size < 1:
            raise ValueError(f"batch size must be >= 1, got {options.batch_size}")
        self.provider = provider
        self.writer = writer
        self.options = options
        self.observer = observer or ImportObserver()
        self._policy = options.poll_policy()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._clock = clock
        self._stop_event = stop_event

    async def run(
        self,
        descriptors: Sequence[MediaDescriptor],
        existing: Sequence[MediaResult] = (),
    ) -> List[MediaResult]:
        """Import ``descriptors`` and return all results in input order.

        ``existing`` seeds the run with results from an earlier checkpoint; it
        must be a prefix of ``descriptors`` and those items are skipped.
        """
        pending = remaining_after_checkpoint(descriptors, existing) if existing else list(descriptors)
        results = ResultSet(existing)
        offset = len(existing)
        batches = batch_count(len(pending), self.options.batch_size)

        self.observer.run_started(len(pending), batches, resumed=len(existing))
        try:
            for batch_index, batch in enumerate(iter_batches(pending, self.options.batch_size)):
                if self._stop_event is not None and self._stop_event.is_set():
                    raise ImportCancelledError("import cancelled")
                self.observer.batch_started(batch_index, batches, len(batch))

                batch_results = await self._run_batch(batch_index, batch, offset)

                results.extend(batch_results)
                for result in batch_results:
                    self.observer.item_completed(result)

                path = self.writer.write(results.snapshot())
                self.observer.checkpoint_written(path, len(results))
                offset += len(batch)
        except Exception as exc:
            self.observer.run_failed(exc)
            raise

        final = results.snapshot()
        self.observer.run_completed(final)
        return final

    async def _run_batch(
        self,
        batch_index: int,
        batch: Sequence[MediaDescriptor],
        offset: int,
    ) -> List[MediaResult]:
        uploaded = await upload_batch(
            self.provider,
            batch,
            offset=offset,
            clock=self._clock,
            isolate_failures=self.options.isolate_failures,
        )
        in_flight = [entry for entry in uploaded if isinstance(entry, InFlightItem)]
        self.observer.batch_uploaded(batch_index, in_flight)

        outcomes = await poll_batch(
            self.provider,
            in_flight,
            policy=self._policy,
            sleep=self._sleep,
            rng=self._rng,
            clock=self._clock,
            stop_event=self._stop_event,
            observer=self.observer,
            isolate_failures=self.options.isolate_failures,
        )

        # Put polled results back at their input positions next to failed uploads.
        polled = iter(build_result(outcome) for outcome in outcomes)
        return [next(polled) if isinstance(entry, InFlightItem) else entry for entry in uploaded]
