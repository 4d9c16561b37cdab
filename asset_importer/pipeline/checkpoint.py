import json
import os
from pathlib import Path
from typing import List, Sequence, Union

from asset_importer.schemas import MediaDescriptor, MediaResult
from asset_importer.utils.logging import get_logger


logger = get_logger(__name__)

PathLike = Union[str, Path]


class CheckpointMismatchError(ValueError):
    pass


def dumps_results(results: Sequence[MediaResult]) -> str:
    return json.dumps([r.to_record() for r in results], indent=2, ensure_ascii=False)


def loads_results(text: str) -> List[MediaResult]:
    data = json.loads(text)
    if not isinstance(data, list):
        raise ValueError("checkpoint must contain a JSON array")
    return [MediaResult.from_record(record) for record in data]


def load_descriptors(path: PathLike) -> List[MediaDescriptor]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON array of media descriptors")
    return [MediaDescriptor.model_validate(item) for item in data]


def load_checkpoint(path: PathLike) -> List[MediaResult]:
    return loads_results(Path(path).read_text(encoding="utf-8"))


class CheckpointWriter:
    """Rewrites the whole result file after every batch.

    The file is written next to its destination and renamed into place, so a
    crash mid-write leaves the previous checkpoint intact. Errors propagate.
    """

    def __init__(self, path: PathLike) -> None:
        self.path = Path(path)

    def write(self, results: Sequence[MediaResult]) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(dumps_results(results))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except Exception:
            if tmp.exists():
                tmp.unlink(missing_ok=True)
            raise
        logger.debug("wrote %d results to %s", len(results), self.path)
        return self.path


def remaining_after_checkpoint(
    descriptors: Sequence[MediaDescriptor],
    existing: Sequence[MediaResult],
) -> List[MediaDescriptor]:
    """Return the descriptors a resumed run still has to process.

    Results are stored in input order, so a checkpoint covers a prefix of the
    input. Anything else means the input changed since the checkpoint was made.
    """
    if len(existing) > len(descriptors):
        raise CheckpointMismatchError(
            f"checkpoint has {len(existing)} results but input has only {len(descriptors)} items"
        )
    for i, (descriptor, result) in enumerate(zip(descriptors, existing)):
        if descriptor.url != result.source.url:
            raise CheckpointMismatchError(
                f"item {i}: checkpoint url {result.source.url!r} != input url {descriptor.url!r}"
            )
    return list(descriptors[len(existing) :])
