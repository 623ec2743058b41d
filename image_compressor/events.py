"""Lifecycle and progress events emitted by the compressor."""

from collections import defaultdict
from enum import Enum
from typing import Any, Callable, DefaultDict, List, Optional, Union

from pydantic import BaseModel


class EventName(str, Enum):
    """Names of the events a client emits."""
    INIT = "init"
    START = "start"
    SELECTING = "selecting"
    PROGRESS = "progress"
    QUOTA_UPDATE = "quota_update"
    KEY_ERROR = "key_error"
    SUCCESS = "success"
    ERROR = "error"
    RESET = "reset"


class InitEvent(BaseModel):
    total_keys: int
    keys_configured: List[str]


class StartEvent(BaseModel):
    source_kind: str
    filename: Optional[str] = None
    size: Optional[int] = None


class SelectingEvent(BaseModel):
    key_index: int
    attempt: int  # 1-based
    max_attempts: int
    usage_count: Optional[int] = None
    remaining: Optional[int] = None  # None while usage is unknown


class ProgressEvent(BaseModel):
    stage: str
    progress: float
    message: str
    bytes_processed: Optional[int] = None
    total_bytes: Optional[int] = None


class QuotaUpdateEvent(BaseModel):
    key_index: int
    usage_count: int
    remaining: int


class KeyErrorEvent(BaseModel):
    key_index: int
    message: str


class SuccessEvent(BaseModel):
    key_index: int
    original_size: Optional[int] = None
    compressed_size: int
    saved_bytes: int
    compression_ratio: str
    filename: Optional[str] = None
    usage_count: Optional[int] = None
    remaining: Optional[int] = None


class ErrorEvent(BaseModel):
    kind: str
    category: str
    key_index: Optional[int] = None
    message: str
    status: Optional[int] = None
    error: str


class ResetEvent(BaseModel):
    message: str


Listener = Callable[[Any], Any]
EventKey = Union[EventName, str]


class EventEmitter:
    """Minimal synchronous event emitter.

    Listeners run in registration order on the emitting task. Exceptions raised
    by a listener propagate to the emitter.
    """

    def __init__(self) -> None:
        self._listeners: DefaultDict[str, List[Listener]] = defaultdict(list)

    @staticmethod
    def _key(event: EventKey) -> str:
        return event.value if isinstance(event, EventName) else str(event)

    def on(self, event: EventKey, listener: Optional[Listener] = None):
        """Register a listener; usable as a decorator when listener is omitted."""
        if listener is None:
            def decorator(func: Listener) -> Listener:
                self._listeners[self._key(event)].append(func)
                return func
            return decorator

        self._listeners[self._key(event)].append(listener)
        return listener

    def once(self, event: EventKey, listener: Listener) -> Listener:
        """Register a listener that is removed after its first call."""
        def wrapper(payload: Any) -> Any:
            self.off(event, wrapper)
            return listener(payload)

        self._listeners[self._key(event)].append(wrapper)
        return wrapper

    def off(self, event: EventKey, listener: Listener) -> None:
        listeners = self._listeners.get(self._key(event))
        if listeners and listener in listeners:
            listeners.remove(listener)

    def emit(self, event: EventKey, payload: Any = None) -> bool:
        """Call every listener for event; returns whether any was registered."""
        listeners = list(self._listeners.get(self._key(event), ()))
        for listener in listeners:
            listener(payload)
        return bool(listeners)

    def listener_count(self, event: EventKey) -> int:
        return len(self._listeners.get(self._key(event), ()))

    def remove_all_listeners(self, event: Optional[EventKey] = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(self._key(event), None)
