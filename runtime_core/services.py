"""
Service container for the process-scoped collaborators.

``RuntimeServices`` builds the CDN resolver, the editor loader and the
runtime registry (with a factory for every language) once, and consumers
receive them through their constructors.

``SharedLoop`` runs one long-lived event loop in a daemon thread so
synchronous callers (the Flask request handlers) can submit coroutines
against the same registry cache. The loop runs until process exit.
"""

import asyncio
import logging
import threading
from concurrent.futures import Future
from typing import Any, Awaitable, Dict, Iterable, Optional

import requests

from .bridges import BridgeFactory
from .cdn_resolver import MONACO_EDITOR, PACKAGE_INDEX, CDNResolver
from .config import RuntimeConfig
from .editor_loader import EditorLibraryLoader, EditorEngine, MonacoAssetEngine
from .embedded_python import EmbeddedPythonFactory, PackageInstaller
from .languages import LanguageID
from .native_script import NodeScriptFactory
from .orchestrator import BlockInput, ExecutionOrchestrator
from .remote_compilers import remote_factories
from .runtime_registry import RuntimeRegistry

logger = logging.getLogger(__name__)


class SharedLoop:
    """A single event loop running in a daemon thread, started lazily."""

    def __init__(self, name: str = 'polyrun-loop'):
        self.name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None:
                loop = asyncio.new_event_loop()
                started = threading.Event()

                def _run_loop():
                    asyncio.set_event_loop(loop)
                    loop.call_soon(started.set)
                    loop.run_forever()

                self._thread = threading.Thread(target=_run_loop, name=self.name, daemon=True)
                self._thread.start()
                started.wait()
                self._loop = loop
                logger.info(f"Shared event loop {self.name} started")
            return self._loop

    def submit(self, coro: Awaitable[Any]) -> Future:
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def run(self, coro: Awaitable[Any], timeout: Optional[float] = None) -> Any:
        """Run ``coro`` on the shared loop and block for its result."""
        return self.submit(coro).result(timeout)

    def call(self, func, *args) -> Any:
        """Run a plain function on the loop thread and block for its result."""
        async def _call():
            return func(*args)
        return self.run(_call())


class RuntimeServices:
    """Owns the resolver, editor loader and runtime registry for one process."""

    def __init__(self, config: Optional[RuntimeConfig] = None,
                 session: Optional[requests.Session] = None,
                 engine: Optional[EditorEngine] = None,
                 installer: Optional[PackageInstaller] = None,
                 factories: Optional[Dict[str, BridgeFactory]] = None):
        self.config = config or RuntimeConfig.from_env()
        self.session = session or requests.Session()

        self.resolver = CDNResolver(self.config.resolver, self.session)
        self.editor_loader = EditorLibraryLoader(
            self.resolver,
            engine or MonacoAssetEngine(self.config.editor, self.session),
            self.config.editor,
        )
        self.registry = RuntimeRegistry(
            factories if factories is not None else self.default_factories(installer),
            default_timeout=self.config.acquisition_timeout,
        )
        self.loop = SharedLoop()

    def default_factories(self, installer: Optional[PackageInstaller] = None) -> Dict[str, BridgeFactory]:
        factories: Dict[str, BridgeFactory] = {
            LanguageID.PYTHON.value: EmbeddedPythonFactory(self.resolver, self.config.python, installer),
            LanguageID.JAVASCRIPT.value: NodeScriptFactory(LanguageID.JAVASCRIPT.value, self.config.native),
            LanguageID.TYPESCRIPT.value: NodeScriptFactory(LanguageID.TYPESCRIPT.value, self.config.native),
        }
        factories.update(remote_factories(self.config.remote, self.session))
        return factories

    def create_orchestrator(self, code_blocks: Iterable[BlockInput]) -> ExecutionOrchestrator:
        return ExecutionOrchestrator(
            self.registry, code_blocks,
            acquisition_timeout=self.config.acquisition_timeout,
            execution_timeout=self.config.execution_timeout,
        )

    async def cdn_health(self) -> Dict[str, bool]:
        return await self.resolver.precheck([MONACO_EDITOR, PACKAGE_INDEX])

    def get_status(self) -> Dict[str, Any]:
        return {
            'runtimes': self.registry.get_status(),
            'editor': self.editor_loader.get_status(),
        }
