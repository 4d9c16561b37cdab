from pathlib import Path
from typing import Iterable, List, Sequence

from asset_importer.schemas import AssetStatus, InFlightItem, MediaResult
from asset_importer.utils.logging import get_logger


logger = get_logger(__name__)


class ImportObserver:
    """Receives progress notifications from the importer. Every hook is a no-op by default."""

    def run_started(self, total: int, batches: int, resumed: int = 0) -> None:
        pass

    def batch_started(self, batch_index: int, batches: int, size: int) -> None:
        pass

    def batch_uploaded(self, batch_index: int, items: Sequence[InFlightItem]) -> None:
        pass

    def status_polled(self, item: InFlightItem, status: AssetStatus) -> None:
        pass

    def item_completed(self, result: MediaResult) -> None:
        pass

    def checkpoint_written(self, path: Path, count: int) -> None:
        pass

    def run_completed(self, results: Sequence[MediaResult]) -> None:
        pass

    def run_failed(self, error: BaseException) -> None:
        pass


class LoggingObserver(ImportObserver):
    def run_started(self, total: int, batches: int, resumed: int = 0) -> None:
        if resumed:
            logger.info("Resuming after %d checkpointed results", resumed)
        logger.info("Importing %d videos in %d batches", total, batches)

    def batch_started(self, batch_index: int, batches: int, size: int) -> None:
        logger.info("Batch %d/%d: uploading %d videos", batch_index + 1, batches, size)

    def batch_uploaded(self, batch_index: int, items: Sequence[InFlightItem]) -> None:
        logger.info("Uploaded %d videos", len(items))

    def status_polled(self, item: InFlightItem, status: AssetStatus) -> None:
        logger.debug("poll %s phase=%s", status.id, status.phase)

    def item_completed(self, result: MediaResult) -> None:
        phase = "ready" if result.success else "failed"
        logger.info("%s: %s :: error: %s", phase, result.assetId, result.errorMessage or "none")

    def checkpoint_written(self, path: Path, count: int) -> None:
        logger.info("Checkpoint written: %s (%d results)", path, count)

    def run_completed(self, results: Sequence[MediaResult]) -> None:
        failed = sum(1 for r in results if not r.success)
        logger.info("Done! %d results, %d failed", len(results), failed)

    def run_failed(self, error: BaseException) -> None:
        logger.error("Import aborted: %s", error, exc_info=error)


class CompositeObserver(ImportObserver):
    def __init__(self, observers: Iterable[ImportObserver]) -> None:
        self._observers: List[ImportObserver] = list(observers)

    def run_started(self, total: int, batches: int, resumed: int = 0) -> None:
        for observer in self._observers:
            observer.run_started(total, batches, resumed)

    def batch_started(self, batch_index: int, batches: int, size: int) -> None:
        for observer in self._observers:
            observer.batch_started(batch_index, batches, size)

    def batch_uploaded(self, batch_index: int, items: Sequence[InFlightItem]) -> None:
        for observer in self._observers:
            observer.batch_uploaded(batch_index, items)

    def status_polled(self, item: InFlightItem, status: AssetStatus) -> None:
        for observer in self._observers:
            observer.status_polled(item, status)

    def item_completed(self, result: MediaResult) -> None:
        for observer in self._observers:
            observer.item_completed(result)

    def checkpoint_written(self, path: Path, count: int) -> None:
        for observer in self._observers:
            observer.checkpoint_written(path, count)

    def run_completed(self, results: Sequence[MediaResult]) -> None:
        for observer in self._observers:
            observer.run_completed(results)

    def run_failed(self, error: BaseException) -> None:
        for observer in self._observers:
            observer.run_failed(error)
