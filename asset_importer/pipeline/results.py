from dataclasses import dataclass
from typing import Iterable, Iterator, List, Sequence

from asset_importer.schemas import PHASE_READY, MediaResult
from asset_importer.pipeline.polling import PollOutcome


def build_result(outcome: PollOutcome) -> MediaResult:
    """Merge the terminal status of one asset with its source descriptor."""
    status = outcome.status
    return MediaResult(
        assetId=status.id,
        success=status.phase == PHASE_READY,
        errorMessage=status.errorMessage or None,
        seconds=outcome.finished_at - outcome.item.start_time,
        source=outcome.item.source,
    )


class ResultSet:
    """Append-only, ordered collection of results for one import run."""

    def __init__(self, initial: Iterable[MediaResult] = ()) -> None:
        self._results: List[MediaResult] = list(initial)

    def extend(self, results: Iterable[MediaResult]) -> None:
        self._results.extend(results)

    def snapshot(self) -> List[MediaResult]:
        return list(self._results)

    def __len__(self) -> int:
        return len(self._results)

    def __iter__(self) -> Iterator[MediaResult]:
        return iter(list(self._results))


@dataclass(frozen=True)
class ImportSummary:
    total: int
    succeeded: int
    failed: int
    seconds_total: float

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "seconds_total": round(self.seconds_total, 3),
        }


def summarize(results: Sequence[MediaResult]) -> ImportSummary:
    succeeded = sum(1 for r in results if r.success)
    return ImportSummary(
        total=len(results),
        succeeded=succeeded,
        failed=len(results) - succeeded,
        seconds_total=sum(r.seconds for r in results),
    )
