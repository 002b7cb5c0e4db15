"""
Runtime Registry - one execution engine per language, acquired at most once.

Each language has a tagged cache entry:

    UNSTARTED ──get_runtime()──▶ LOADING(task) ──ok──▶ READY(handle)
        ▲                            │
        │                            └──fail──▶ FAILED(error)
        └──────────── next get_runtime() retries from scratch ◀──┘

The acquisition task is created and stored synchronously, before the first
suspension point, so every caller arriving while the language is LOADING
awaits the same task: at most one construction is ever in flight per
language. All mutation happens on the event-loop thread between
suspension points, so no lock is needed.

Callers may bound their own wait with ``timeout``; giving up (or being
cancelled) never cancels the shared acquisition, which still completes and
populates the cache for later consumers.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .bridges import BridgeFactory, RuntimeHandle, consume_exception, maybe_await
from .exceptions import RuntimeAcquisitionError, RuntimeTimedOut, UnsupportedLanguageError
from .languages import LANGUAGE_CONFIGS, RuntimeFamily, resolve_language_id
from .models import AcquisitionState
from .observers import SubscriberList

logger = logging.getLogger(__name__)

RuntimeCallback = Callable[[RuntimeHandle], None]


@dataclass
class _CacheEntry:
    state: AcquisitionState = AcquisitionState.UNSTARTED
    task: Optional[asyncio.Task] = None
    handle: Optional[RuntimeHandle] = None
    error: Optional[BaseException] = None
    attempts: int = 0


class RuntimeRegistry:
    """Process-scoped cache of execution engines keyed by language."""

    def __init__(self, factories: Optional[Dict[str, BridgeFactory]] = None,
                 default_timeout: Optional[float] = None):
        self._factories: Dict[str, BridgeFactory] = {}
        self._entries: Dict[str, _CacheEntry] = {}
        self._subscribers: Dict[str, SubscriberList] = {}
        self.default_timeout = default_timeout
        for language, factory in (factories or {}).items():
            self.register_factory(language, factory)

    # ------------------------------------------------------------------
    # configuration
    # ------------------------------------------------------------------

    def register_factory(self, language: str, factory: BridgeFactory) -> None:
        self._factories[self._key(language)] = factory

    def supported_languages(self) -> List[str]:
        return list(self._factories.keys())

    def should_preload(self, language: str) -> bool:
        """Only the embedded interpreter is expensive enough to warrant a loading state."""
        lang_id = resolve_language_id(language)
        config = LANGUAGE_CONFIGS.get(lang_id) if lang_id else None
        return config is not None and config.family == RuntimeFamily.EMBEDDED

    # ------------------------------------------------------------------
    # acquisition
    # ------------------------------------------------------------------

    async def get_runtime(self, language: str, timeout: Optional[float] = None) -> RuntimeHandle:
        """Return the language's handle, constructing it on first use."""
        key = self._key(language)
        entry = self._entries.get(key)

        if entry is not None and entry.state == AcquisitionState.READY:
            return entry.handle

        if entry is None or entry.state in (AcquisitionState.UNSTARTED, AcquisitionState.FAILED):
            factory = self._factories.get(key)
            if factory is None:
                raise UnsupportedLanguageError(language)
            entry = self._entries.setdefault(key, _CacheEntry())
            entry.state = AcquisitionState.LOADING
            entry.error = None
            entry.attempts += 1
            entry.task = asyncio.ensure_future(self._acquire(key, factory, entry))
            entry.task.add_done_callback(consume_exception)
            logger.info(f"Acquiring {key} runtime (attempt {entry.attempts})")

        wait_timeout = timeout if timeout is not None else self.default_timeout
        try:
            if wait_timeout is None:
                return await asyncio.shield(entry.task)
            return await asyncio.wait_for(asyncio.shield(entry.task), wait_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Gave up waiting for {key} runtime after {wait_timeout}s")
            raise RuntimeTimedOut(key, wait_timeout)

    async def _acquire(self, key: str, factory: BridgeFactory, entry: _CacheEntry) -> RuntimeHandle:
        try:
            handle = await maybe_await(factory())
        except Exception as e:
            entry.state = AcquisitionState.FAILED
            entry.task = None
            entry.error = e
            logger.error(f"{key} runtime acquisition failed: {e}")
            if isinstance(e, RuntimeAcquisitionError):
                raise
            raise RuntimeAcquisitionError(f"{key} runtime failed to initialise: {e}", key) from e

        entry.handle = handle
        entry.state = AcquisitionState.READY
        entry.task = None
        logger.info(f"{key} runtime ready ({type(handle).__name__})")
        subscribers = self._subscribers.get(key)
        if subscribers is not None:
            subscribers.notify(handle)
        return handle

    # ------------------------------------------------------------------
    # observation
    # ------------------------------------------------------------------

    def subscribe(self, language: str, callback: RuntimeCallback) -> Callable[[], None]:
        """Call ``callback(handle)`` once the language is ready (immediately if it already is)."""
        key = self._key(language)
        subscribers = self._subscribers.setdefault(key, SubscriberList(f'runtime:{key}'))
        unsubscribe = subscribers.add(callback)

        entry = self._entries.get(key)
        if entry is not None and entry.state == AcquisitionState.READY:
            subscribers.invoke(callback, entry.handle)

        return unsubscribe

    def is_loading(self, language: str) -> bool:
        return self.state(language) == AcquisitionState.LOADING

    def is_ready(self, language: str) -> bool:
        return self.state(language) == AcquisitionState.READY

    def state(self, language: str) -> AcquisitionState:
        entry = self._entries.get(self._key(language))
        return entry.state if entry is not None else AcquisitionState.UNSTARTED

    def get_cached(self, language: str) -> Optional[RuntimeHandle]:
        entry = self._entries.get(self._key(language))
        if entry is not None and entry.state == AcquisitionState.READY:
            return entry.handle
        return None

    def last_error(self, language: str) -> Optional[BaseException]:
        entry = self._entries.get(self._key(language))
        return entry.error if entry is not None else None

    def get_status(self) -> Dict[str, dict]:
        status = {}
        for key in self._factories:
            entry = self._entries.get(key) or _CacheEntry()
            status[key] = {
                'state': entry.state.value,
                'attempts': entry.attempts,
                'handle': type(entry.handle).__name__ if entry.handle else None,
                'error': str(entry.error) if entry.error else None,
            }
        return status

    def reset(self) -> None:
        """Drop every cached engine and subscriber. Does not cancel in-flight loads."""
        self._entries.clear()
        for subscribers in self._subscribers.values():
            subscribers.clear()
        self._subscribers.clear()

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    @staticmethod
    def _key(language: str) -> str:
        lang_id = resolve_language_id(language)
        return lang_id.value if lang_id else str(language).lower().strip()
