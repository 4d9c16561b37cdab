from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


PHASE_READY = "ready"
PHASE_FAILED = "failed"
TERMINAL_PHASES = frozenset({PHASE_READY, PHASE_FAILED})

# Keys owned by the result record; everything else belongs to the source descriptor.
RESULT_KEYS = ("assetId", "success", "errorMessage", "seconds")


class MediaDescriptor(BaseModel):
    """One input item. Fields other than ``url`` are carried through to the result."""

    model_config = ConfigDict(extra="allow", frozen=True)

    url: str


class AssetHandle(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str


class AssetStatus(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    phase: Optional[str] = None
    errorMessage: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES


@dataclass(frozen=True)
class InFlightItem:
    """An asset that was created and is waiting for a terminal status."""

    index: int
    handle: AssetHandle
    source: MediaDescriptor
    start_time: float


class MediaResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    assetId: Optional[str]
    success: bool
    errorMessage: Optional[str] = None
    seconds: float
    source: MediaDescriptor

    def to_record(self) -> Dict[str, Any]:
        """Flatten into the persisted shape: result keys first, then the descriptor fields."""
        record: Dict[str, Any] = {"assetId": self.assetId, "success": self.success}
        if self.errorMessage:
            record["errorMessage"] = self.errorMessage
        record["seconds"] = self.seconds
        record.update(self.source.model_dump())
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "MediaResult":
        source = {key: value for key, value in record.items() if key not in RESULT_KEYS}
        return cls(
            assetId=record.get("assetId"),
            success=record["success"],
            errorMessage=record.get("errorMessage"),
            seconds=record["seconds"],
            source=MediaDescriptor.model_validate(source),
        )


class ImportOptionsPayload(BaseModel):
    batchSize: Optional[int] = Field(default=None, ge=1)
    pollTimeoutSec: Optional[float] = Field(default=None, gt=0)
    isolateFailures: bool = False


class CreateImportRequest(BaseModel):
    media: List[MediaDescriptor] = Field(min_length=1)
    options: Optional[ImportOptionsPayload] = None


class CreateImportResponse(BaseModel):
    jobId: str
    total: int


class ImportStatusResponse(BaseModel):
    status: Literal["QUEUED", "RUNNING", "FAILED", "DONE"]
    progress: int
    total: Optional[int] = None
    resultUrl: Optional[str] = None
    logs: Optional[list[str]] = None
    error: Optional[str] = None
