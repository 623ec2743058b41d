"""End-to-end orchestration of one compression task.

A task moves through ``PREPARING -> SELECTING -> UPLOADING -> TRANSFORMING ->
DOWNLOADING -> FINALIZING`` and ends in ``SUCCESS`` or ``FAILED``. Each attempt
runs on one credential; failures are classified and either rotate to another
credential, retry after a linear backoff, or end the task. The number of
attempts is capped at the pool size.
"""

import asyncio
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

from .classifier import Classification, RetryAction, classify, retry_delay, status_of
from .constants import COMPRESSED_PROGRESS, DEFAULT_RETRY_BASE_DELAY, URL_FETCH_PROGRESS
from .events import (
    ErrorEvent,
    EventEmitter,
    EventName,
    KeyErrorEvent,
    QuotaUpdateEvent,
    SelectingEvent,
    StartEvent,
    SuccessEvent,
)
from .exceptions import (
    PipelineFailedError,
    PoolExhaustedError,
    TaskCancelledError,
)
from .models import CompressionOptions, CompressionResult, CompressionTask, TransformMode
from .pool import Credential, CredentialPool
from .transport import CancellationToken, ShrinkResult, TransportClient, TransportResponse
from .utils.compression import calculate_saved_bytes, calculate_saved_percent
from .utils.logging import LoggingContext, get_logger
from .utils.progress import ProgressEmitter, Stage
from .utils.sources import prepare_source

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

TRANSFORM_MESSAGES = {
    Stage.RESIZING: ("Applying resize...", "Resize complete"),
    Stage.CONVERTING: ("Converting format...", "Conversion complete"),
    Stage.TRANSFORMING: ("Applying resize and convert...", "Transform complete"),
}


class PipelineState(str, Enum):
    PREPARING = "preparing"
    SELECTING = "selecting"
    UPLOADING = "uploading"
    TRANSFORMING = "transforming"
    DOWNLOADING = "downloading"
    FINALIZING = "finalizing"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class PipelineAttempt:
    """State of one pass through the retry loop."""

    attempt_number: int  # 0-based
    max_attempts: int
    selected_credential: Optional[Credential] = None
    last_error: Optional[BaseException] = None
    state: PipelineState = PipelineState.SELECTING

    def advance(self, state: PipelineState) -> None:
        self.state = state
        logger.debug("Pipeline state", state=state.value, attempt=self.attempt_number + 1)

    @property
    def has_next(self) -> bool:
        return self.attempt_number < self.max_attempts - 1


def _describe(error: Optional[BaseException]) -> str:
    return getattr(error, "message", None) or str(error)


def plan_transforms(task: CompressionTask) -> List[Stage]:
    """Progress stages for the transforms a task will run, in order."""
    if task.resize and task.convert:
        if task.transform_mode == TransformMode.CHAINED:
            return [Stage.RESIZING, Stage.CONVERTING]
        return [Stage.TRANSFORMING]
    if task.resize:
        return [Stage.RESIZING]
    if task.convert:
        return [Stage.CONVERTING]
    return []


class PipelineOrchestrator:
    """Drives compression tasks against a shared credential pool."""

    def __init__(
        self,
        pool: CredentialPool,
        transport: TransportClient,
        events: Optional[EventEmitter] = None,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        sleep: Sleep = asyncio.sleep,
    ):
        self.pool = pool
        self.transport = transport
        self.events = events or EventEmitter()
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep

    async def run(
        self,
        source: Any,
        options: Optional[CompressionOptions] = None,
        token: Optional[CancellationToken] = None,
    ) -> CompressionResult:
        """Compress one source, retrying across credentials.

        Raises:
            PoolExhaustedError: If no enabled credential is left
            QuotaExhaustedError: PoolExhaustedError subclass, when every
                credential is out of quota
            PipelineFailedError: On a task-fatal error or after the last attempt
            TaskCancelledError: If token was cancelled
        """
        with LoggingContext(task_id=uuid.uuid4().hex[:12]):
            task = await prepare_source(source, options)
            self.events.emit(
                EventName.START,
                StartEvent(
                    source_kind=task.source_kind.value,
                    filename=task.filename,
                    size=task.original_size,
                ),
            )
            return await self._run_attempts(task, token)

    async def _run_attempts(
        self, task: CompressionTask, token: Optional[CancellationToken]
    ) -> CompressionResult:
        progress = ProgressEmitter(self.events, plan_transforms(task))
        max_attempts = len(self.pool)
        last_error: Optional[BaseException] = None
        pinned_index: Optional[int] = None

        for attempt_number in range(max_attempts):
            attempt = PipelineAttempt(attempt_number, max_attempts, last_error=last_error)
            credential = self._select(attempt, pinned_index)
            pinned_index = None

            try:
                buffer, content_type = await self._execute(task, attempt, progress, token)
            except TaskCancelledError:
                attempt.advance(PipelineState.FAILED)
                raise
            except Exception as e:
                last_error = e
                attempt.last_error = e
                classification = classify(e)
                await self._handle_failure(attempt, classification, e)

                if classification.action is RetryAction.FAIL:
                    attempt.advance(PipelineState.FAILED)
                    raise PipelineFailedError(
                        f"Compression failed: {_describe(e)}",
                        last_error=e,
                        attempts=attempt_number + 1,
                    ) from e
                if classification.action is RetryAction.RETRY_SAME:
                    pinned_index = credential.index
                continue

            attempt.advance(PipelineState.FINALIZING)
            result = self._finalize(task, credential, buffer, content_type, progress)
            attempt.advance(PipelineState.SUCCESS)
            return result

        logger.error("Compression failed on every attempt", attempts=max_attempts)
        raise PipelineFailedError(
            f"Compression failed after {max_attempts} attempts: {_describe(last_error)}",
            last_error=last_error,
            attempts=max_attempts,
        ) from last_error

    def _select(self, attempt: PipelineAttempt, pinned_index: Optional[int]) -> Credential:
        attempt.advance(PipelineState.SELECTING)
        try:
            if pinned_index is not None and self.pool.is_available(pinned_index):
                credential = self.pool.acquire(pinned_index)
            else:
                credential = self.pool.select()
        except PoolExhaustedError as e:
            attempt.advance(PipelineState.FAILED)
            if attempt.last_error is None:
                raise
            e.last_error = attempt.last_error
            raise e from attempt.last_error

        attempt.selected_credential = credential
        self.events.emit(
            EventName.SELECTING,
            SelectingEvent(
                key_index=credential.index,
                attempt=attempt.attempt_number + 1,
                max_attempts=attempt.max_attempts,
                usage_count=credential.usage_count,
                remaining=credential.remaining,
            ),
        )
        return credential

    def _record_usage(self, credential: Credential, usage_count: Optional[int]) -> None:
        if usage_count is None:
            return
        self.pool.update_usage(credential.index, usage_count)
        self.events.emit(
            EventName.QUOTA_UPDATE,
            QuotaUpdateEvent(
                key_index=credential.index,
                usage_count=usage_count,
                remaining=max(0, credential.monthly_limit - usage_count),
            ),
        )

    async def _upload(
        self,
        task: CompressionTask,
        credential: Credential,
        progress: ProgressEmitter,
        token: Optional[CancellationToken],
    ) -> ShrinkResult:
        if task.is_remote:
            progress.report(Stage.UPLOADING, URL_FETCH_PROGRESS, "Fetching from URL...")
            shrink = await self.transport.shrink_from_url(task.url, credential.secret, token=token)
        else:
            progress.begin(Stage.UPLOADING, "Starting upload...")
            shrink = await self.transport.shrink(
                task.buffer,
                credential.secret,
                on_upload_progress=progress.track(Stage.UPLOADING),
                token=token,
            )
        progress.finish(Stage.UPLOADING, "Upload complete")
        self._record_usage(credential, shrink.usage_count)

        if task.original_size is None and shrink.input_size is not None:
            task.original_size = shrink.input_size
        return shrink

    async def _transform_step(
        self,
        stage: Stage,
        output_url: str,
        credential: Credential,
        progress: ProgressEmitter,
        token: Optional[CancellationToken],
        resize=None,
        convert=None,
    ) -> TransportResponse:
        label, done = TRANSFORM_MESSAGES[stage]
        progress.begin(stage, label)
        response = await self.transport.transform(
            output_url,
            credential.secret,
            resize=resize,
            convert=convert,
            on_download_progress=progress.track(stage),
            token=token,
        )
        progress.finish(stage, done)
        self._record_usage(credential, response.usage_count)
        return response

    async def _transform(
        self,
        task: CompressionTask,
        shrink: ShrinkResult,
        credential: Credential,
        progress: ProgressEmitter,
        token: Optional[CancellationToken],
    ) -> Optional[TransportResponse]:
        if task.convert is not None and task.convert.needs_background:
            logger.info("Converting to an opaque format without a background colour")

        if task.resize and task.convert:
            if task.transform_mode == TransformMode.COMBINED:
                return await self._transform_step(
                    Stage.TRANSFORMING, shrink.output_url, credential, progress, token,
                    resize=task.resize, convert=task.convert,
                )
            resized = await self._transform_step(
                Stage.RESIZING, shrink.output_url, credential, progress, token,
                resize=task.resize,
            )
            # The resized image needs its own result handle before converting
            reshrink = await self.transport.shrink(resized.content, credential.secret, token=token)
            self._record_usage(credential, reshrink.usage_count)
            return await self._transform_step(
                Stage.CONVERTING, reshrink.output_url, credential, progress, token,
                convert=task.convert,
            )

        if task.resize:
            return await self._transform_step(
                Stage.RESIZING, shrink.output_url, credential, progress, token,
                resize=task.resize,
            )
        if task.convert:
            return await self._transform_step(
                Stage.CONVERTING, shrink.output_url, credential, progress, token,
                convert=task.convert,
            )
        return None

    async def _execute(
        self,
        task: CompressionTask,
        attempt: PipelineAttempt,
        progress: ProgressEmitter,
        token: Optional[CancellationToken],
    ):
        credential = attempt.selected_credential

        attempt.advance(PipelineState.UPLOADING)
        shrink = await self._upload(task, credential, progress, token)
        progress.report(Stage.COMPRESSED, COMPRESSED_PROGRESS, "Image compressed")

        attempt.advance(PipelineState.TRANSFORMING)
        response = await self._transform(task, shrink, credential, progress, token)

        if response is None:
            attempt.advance(PipelineState.DOWNLOADING)
            progress.begin(Stage.DOWNLOADING, "Downloading result...")
            response = await self.transport.download(
                shrink.output_url,
                credential.secret,
                on_download_progress=progress.track(Stage.DOWNLOADING),
                token=token,
            )
            progress.finish(Stage.DOWNLOADING, "Download complete")
            self._record_usage(credential, response.usage_count)

        return response.content, response.content_type

    async def _handle_failure(
        self,
        attempt: PipelineAttempt,
        classification: Classification,
        error: BaseException,
    ) -> None:
        credential = attempt.selected_credential

        if classification.disables_credential:
            self.pool.mark_failed(credential.index, error)
            self.events.emit(
                EventName.KEY_ERROR,
                KeyErrorEvent(key_index=credential.index, message=str(error)),
            )

        self.events.emit(
            EventName.ERROR,
            ErrorEvent(
                kind=classification.kind.value,
                category=classification.category,
                key_index=credential.index,
                message=classification.message,
                status=status_of(error),
                error=str(error),
            ),
        )

        logger.warning(
            "Compression attempt failed",
            key_index=credential.index,
            attempt=attempt.attempt_number + 1,
            max_attempts=attempt.max_attempts,
            kind=classification.kind.value,
            action=classification.action.value,
            status=status_of(error),
        )

        if classification.needs_backoff and attempt.has_next:
            delay = retry_delay(attempt.attempt_number, self.retry_base_delay)
            logger.info("Backing off before retry", delay_seconds=delay)
            await self._sleep(delay)

    def _finalize(
        self,
        task: CompressionTask,
        credential: Credential,
        buffer: bytes,
        content_type: Optional[str],
        progress: ProgressEmitter,
    ) -> CompressionResult:
        compressed_size = len(buffer)
        saved_bytes = calculate_saved_bytes(task.original_size, compressed_size)
        saved_percent = calculate_saved_percent(task.original_size, compressed_size)

        progress.report(Stage.COMPLETE, 1.0, "Compression complete")

        latest = self.pool.get(credential.index)
        self.events.emit(
            EventName.SUCCESS,
            SuccessEvent(
                key_index=credential.index,
                original_size=task.original_size,
                compressed_size=compressed_size,
                saved_bytes=saved_bytes,
                compression_ratio=f"{saved_percent:.2f}%",
                filename=task.filename,
                usage_count=latest.usage_count,
                remaining=latest.remaining,
            ),
        )
        logger.info(
            "Compression complete",
            key_index=credential.index,
            original_size=task.original_size,
            compressed_size=compressed_size,
        )

        return CompressionResult(
            buffer=buffer,
            original_size=task.original_size,
            compressed_size=compressed_size,
            saved_bytes=saved_bytes,
            saved_percent=saved_percent,
            filename=task.filename,
            key_index=credential.index,
            content_type=content_type,
        )
