"""Stage-weighted progress reporting."""

from enum import Enum
from typing import Callable, Dict, Optional, Sequence, Tuple

from ..constants import DOWNLOAD_RANGE, TRANSFORM_RANGE, UPLOAD_RANGE
from ..events import EventEmitter, EventName, ProgressEvent

ByteCallback = Callable[[int, int], None]


class Stage(str, Enum):
    """Pipeline stages that report progress."""
    UPLOADING = "uploading"
    COMPRESSED = "compressed"
    RESIZING = "resizing"
    CONVERTING = "converting"
    TRANSFORMING = "transforming"
    DOWNLOADING = "downloading"
    COMPLETE = "complete"


STAGE_LABELS: Dict[Stage, str] = {
    Stage.UPLOADING: "Uploading",
    Stage.RESIZING: "Resizing",
    Stage.CONVERTING: "Converting",
    Stage.TRANSFORMING: "Transforming",
    Stage.DOWNLOADING: "Downloading",
}


def calculate_progress_in_range(
    bytes_processed: int, total_bytes: int, start: float, end: float
) -> float:
    """Map byte progress into the [start, end] slice of overall progress."""
    if total_bytes <= 0:
        return start
    fraction = min(max(bytes_processed / total_bytes, 0.0), 1.0)
    return start + fraction * (end - start)


def format_progress_message(label: str, fraction: float) -> str:
    return f"{label}... ({round(fraction * 100)}%)"


def build_stage_ranges(transforms: Sequence[Stage] = ()) -> Dict[Stage, Tuple[float, float]]:
    """Reserve a sub-range for every stage of one task.

    Transform stages split the transform band evenly, in execution order.
    """
    ranges = {Stage.UPLOADING: UPLOAD_RANGE, Stage.DOWNLOADING: DOWNLOAD_RANGE}
    if transforms:
        start, end = TRANSFORM_RANGE
        width = (end - start) / len(transforms)
        for i, stage in enumerate(transforms):
            ranges[stage] = (start + i * width, start + (i + 1) * width)
    return ranges


class ProgressEmitter:
    """Turns per-stage byte counters into one non-decreasing overall value.

    Values never go backwards within a task, so a retried upload keeps
    reporting the furthest point already reached.
    """

    def __init__(self, events: EventEmitter, transforms: Sequence[Stage] = ()):
        self._events = events
        self._ranges = build_stage_ranges(transforms)
        self._last = 0.0

    @property
    def last_progress(self) -> float:
        return self._last

    def range_for(self, stage: Stage) -> Tuple[float, float]:
        return self._ranges[stage]

    def report(
        self,
        stage: Stage,
        progress: float,
        message: str,
        bytes_processed: Optional[int] = None,
        total_bytes: Optional[int] = None,
    ) -> float:
        overall = min(max(progress, self._last), 1.0)
        self._last = overall
        self._events.emit(
            EventName.PROGRESS,
            ProgressEvent(
                stage=stage.value,
                progress=overall,
                message=message,
                bytes_processed=bytes_processed,
                total_bytes=total_bytes,
            ),
        )
        return overall

    def begin(self, stage: Stage, message: str) -> float:
        return self.report(stage, self._ranges[stage][0], message)

    def finish(self, stage: Stage, message: str) -> float:
        return self.report(stage, self._ranges[stage][1], message)

    def track(self, stage: Stage) -> ByteCallback:
        """Byte-progress callback for a transport call in this stage."""
        start, end = self._ranges[stage]
        label = STAGE_LABELS[stage]

        def on_bytes(bytes_processed: int, total_bytes: int) -> None:
            fraction = bytes_processed / total_bytes if total_bytes > 0 else 0.0
            self.report(
                stage,
                calculate_progress_in_range(bytes_processed, total_bytes, start, end),
                format_progress_message(label, min(fraction, 1.0)),
                bytes_processed=bytes_processed,
                total_bytes=total_bytes,
            )

        return on_bytes
