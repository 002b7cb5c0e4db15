"""
Editor Library Loader - loads the text-editing widget engine exactly once.

State machine:

    UNSTARTED ──initialize()──▶ LOADING ──ok──▶ READY   (terminal, never reloaded)
                                   │
                                   └──fail──▶ ERROR ──initialize()──▶ LOADING

Loading resolves a healthy Monaco mirror, points the widget engine's module
path at ``<mirror>/vs`` and awaits the engine's async init. If that fails the
loader falls back to the hard-coded default mirror, but only once for the
lifetime of the loader; later retries go through the CDN path alone.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from enum import Enum
from typing import Callable, Optional

import requests

from .cdn_resolver import CDNResolver, CDNResource, MONACO_EDITOR
from .bridges import consume_exception
from .config import EditorConfig
from .exceptions import EditorLoadError
from .observers import SubscriberList

logger = logging.getLogger(__name__)


class LoaderState(Enum):
    UNSTARTED = "unstarted"
    LOADING   = "loading"
    READY     = "ready"
    ERROR     = "error"


class EditorEngine(ABC):
    """The third-party widget engine, as seen by the loader."""

    @abstractmethod
    def configure(self, module_path: str) -> None:
        """Point the engine's module loader at ``module_path``."""

    @abstractmethod
    async def init(self) -> None:
        """Load the engine. Raises on failure."""


class MonacoAssetEngine(EditorEngine):
    """Fetches Monaco's AMD loader script from the configured module path."""

    def __init__(self, config: Optional[EditorConfig] = None,
                 session: Optional[requests.Session] = None):
        self.config = config or EditorConfig()
        self._session = session or requests.Session()
        self.module_path: Optional[str] = None
        self.loader_source: Optional[str] = None

    def configure(self, module_path: str) -> None:
        self.module_path = module_path.rstrip('/')

    async def init(self) -> None:
        if not self.module_path:
            raise EditorLoadError("Monaco module path is not configured")
        self.loader_source = await asyncio.to_thread(self._fetch_loader)

    def _fetch_loader(self) -> str:
        url = f'{self.module_path}/{self.config.loader_script}'
        try:
            response = self._session.get(url, timeout=self.config.fetch_timeout)
        except requests.exceptions.RequestException as e:
            raise EditorLoadError(f"Cannot fetch Monaco loader from {url}: {e}")
        if not response.ok:
            raise EditorLoadError(f"Monaco loader request failed: HTTP {response.status_code} ({url})")
        return response.text


class EditorLibraryLoader:
    """Process-scoped loader shared by every editor instance."""

    LOAD_TIME_WINDOW = 10

    def __init__(self, resolver: CDNResolver, engine: Optional[EditorEngine] = None,
                 config: Optional[EditorConfig] = None,
                 resource: CDNResource = MONACO_EDITOR):
        self.config = config or EditorConfig()
        self.resolver = resolver
        self.engine = engine or MonacoAssetEngine(self.config)
        self.resource = resource

        self.state = LoaderState.UNSTARTED
        self.error: Optional[Exception] = None
        self.module_path: Optional[str] = None

        self._init_task: Optional[asyncio.Task] = None
        self._fallback_attempted = False
        self._ready_subscribers = SubscriberList('editor-ready')
        self._error_subscribers = SubscriberList('editor-error')
        self.load_times = deque(maxlen=self.LOAD_TIME_WINDOW)

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Load the widget engine; concurrent callers share one attempt."""
        if self.state == LoaderState.READY:
            return

        if self._init_task is None:
            self.state = LoaderState.LOADING
            self.error = None
            self._init_task = asyncio.ensure_future(self._run())
            self._init_task.add_done_callback(consume_exception)

        await asyncio.shield(self._init_task)

    def subscribe(self, on_ready: Callable[[], None],
                  on_error: Optional[Callable[[Exception], None]] = None) -> Callable[[], None]:
        """Register callbacks; ``on_ready`` fires immediately when already loaded."""
        unsubscribers = [self._ready_subscribers.add(on_ready)]
        if on_error is not None:
            unsubscribers.append(self._error_subscribers.add(on_error))

        if self.state == LoaderState.READY:
            self._ready_subscribers.invoke(on_ready)

        def unsubscribe() -> None:
            for unsub in unsubscribers:
                unsub()

        return unsubscribe

    def is_ready(self) -> bool:
        return self.state == LoaderState.READY

    def is_loading(self) -> bool:
        return self.state == LoaderState.LOADING

    def average_load_time(self) -> float:
        """Mean duration of the recent load attempts, successful or not."""
        if not self.load_times:
            return 0.0
        return round(sum(self.load_times) / len(self.load_times), 4)

    def get_status(self) -> dict:
        return {
            'state': self.state.value,
            'module_path': self.module_path,
            'error': str(self.error) if self.error else None,
            'fallback_attempted': self._fallback_attempted,
            'load_times': [round(t, 4) for t in self.load_times],
            'average_load_time': self.average_load_time(),
        }

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        started = time.perf_counter()
        try:
            await self._load()
        except Exception as e:
            self.load_times.append(time.perf_counter() - started)
            self.state = LoaderState.ERROR
            self.error = e
            self._init_task = None
            logger.error(f"Editor engine failed to load: {e}")
            self._error_subscribers.notify(e)
            raise

        self.load_times.append(time.perf_counter() - started)
        self.state = LoaderState.READY
        logger.info(f"Editor engine ready ({self.module_path})")
        self._ready_subscribers.notify()

    async def _load(self) -> None:
        try:
            base_url = await self.resolver.resolve_resource(self.resource, self.config.probe_path)
            await self._configure_and_init(base_url)
        except Exception as primary_error:
            if self._fallback_attempted:
                raise EditorLoadError(f"Editor engine load failed: {primary_error}",
                                      primary_error=primary_error)

            self._fallback_attempted = True
            logger.warning(f"CDN failover load failed, using default CDN: {primary_error}")
            try:
                await self._configure_and_init(self.config.default_base_url)
            except Exception as fallback_error:
                raise EditorLoadError(f"Editor engine load failed: {fallback_error}",
                                      primary_error=primary_error,
                                      fallback_error=fallback_error)

    async def _configure_and_init(self, base_url: str) -> None:
        module_path = f"{base_url.rstrip('/')}/vs"
        self.engine.configure(module_path)
        logger.info(f"Editor engine module path: {module_path}")
        await self.engine.init()
        self.module_path = module_path
