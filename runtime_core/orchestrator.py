"""
Execution Orchestrator - the "run button" behind one or two code editors.

An orchestrator is built from the ordered code blocks of one page section.
The first supported language is primary; a second one turns on comparison
mode (two editors side by side). ``run`` acquires the language's engine
through the shared registry (showing a loading flag meanwhile), executes the
current source and publishes ``{output, error}``.

``run`` never raises. Acquisition failures, timeouts and engine errors all
come back as a ``RuntimeResult`` with ``error`` set.

Overlapping runs are allowed. Each run takes a generation number when it
starts and only the newest generation may publish its result, so a slow
earlier run can never overwrite a later one.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from .bridges import RuntimeHandle, execute_handle
from .config import ViewportConfig
from .editor_loader import EditorLibraryLoader
from .exceptions import RuntimeTimedOut, UnsupportedLanguageError
from .languages import display_name, get_language_config, resolve_language_id
from .models import CodeBlock, RuntimeResult
from .runtime_registry import RuntimeRegistry
from .viewport import Rect, Viewport, ViewportGatedRenderer, make_editor_factory

logger = logging.getLogger(__name__)

BlockInput = Union[CodeBlock, Dict[str, Any]]


@dataclass
class RunRecord:
    """One finished run, kept in the bounded history."""
    language: str
    success: bool
    duration: float
    generation: int
    error: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'language': self.language,
            'success': self.success,
            'duration': round(self.duration, 4),
            'generation': self.generation,
            'error': self.error,
            'timestamp': self.timestamp,
        }


@dataclass
class LanguageStats:
    runs: int = 0
    failures: int = 0
    total_time: float = 0.0


class ExecutionOrchestrator:
    """Runs the code blocks of one page section against the shared registry."""

    MAX_HISTORY = 100

    def __init__(self, registry: RuntimeRegistry, code_blocks: Iterable[BlockInput],
                 acquisition_timeout: Optional[float] = None,
                 execution_timeout: Optional[float] = None):
        self.registry = registry
        self.acquisition_timeout = acquisition_timeout
        self.execution_timeout = execution_timeout

        self.code: Dict[str, str] = {}
        for raw in code_blocks:
            block = raw if isinstance(raw, CodeBlock) else CodeBlock.from_dict(raw)
            lang_id = block.language_id
            if lang_id is None:
                logger.debug(f"Ignoring code block in unsupported language {block.language!r}")
                continue
            self.code.setdefault(lang_id.value, block.source)

        self.languages: List[str] = list(self.code.keys())
        self.primary: Optional[str] = self.languages[0] if self.languages else None
        self.secondary: Optional[str] = self.languages[1] if len(self.languages) > 1 else None

        # displayed state
        self.output = ''
        self.error: Optional[str] = None
        self.running = False
        self.running_language: Optional[str] = None
        self.loading: Dict[str, bool] = {lang: False for lang in self.languages}
        self.visible: Dict[str, bool] = {lang: False for lang in self.languages}

        self.handles: Dict[str, RuntimeHandle] = {}
        self.stats: Dict[str, LanguageStats] = {lang: LanguageStats() for lang in self.languages}
        self.history: List[RunRecord] = []
        self.renderers: Dict[str, ViewportGatedRenderer] = {}

        self._generation = 0
        self._unsubscribers: List[Callable[[], None]] = []
        for lang in self.active_languages:
            self._unsubscribers.append(
                registry.subscribe(lang, partial(self._on_runtime_ready, lang)))

    # ------------------------------------------------------------------
    # properties
    # ------------------------------------------------------------------

    @property
    def active_languages(self) -> List[str]:
        return [lang for lang in (self.primary, self.secondary) if lang is not None]

    @property
    def comparison_mode(self) -> bool:
        return self.secondary is not None

    # ------------------------------------------------------------------
    # editing
    # ------------------------------------------------------------------

    def update_code(self, language: str, source: str) -> None:
        self.code[self._require(language)] = source

    # ------------------------------------------------------------------
    # running
    # ------------------------------------------------------------------

    async def preload(self) -> None:
        """Start acquiring engines that are expensive enough to warm up early."""
        for lang in self.active_languages:
            if not self.registry.should_preload(lang) or lang in self.handles:
                continue
            self.loading[lang] = True
            try:
                self.handles[lang] = await self.registry.get_runtime(
                    lang, timeout=self.acquisition_timeout)
            except Exception as e:
                logger.warning(f"Preloading {lang} runtime failed: {e}")
            finally:
                self.loading[lang] = False

    async def run(self, language: Optional[str] = None,
                  timeout: Optional[float] = None) -> Optional[RuntimeResult]:
        """Run a block. Returns None when there is nothing to run."""
        key = self._resolve(language)
        if key is None:
            return None
        source = self.code.get(key, '')
        if not source.strip():
            return None

        self._generation += 1
        generation = self._generation
        self.running = True
        self.running_language = key
        self._publish(generation, RuntimeResult())
        started = time.perf_counter()

        handle = self.handles.get(key) or self.registry.get_cached(key)
        if handle is None:
            handle, result = await self._acquire(key)
        if handle is not None:
            exec_timeout = timeout if timeout is not None else self.execution_timeout
            result = await self._execute(key, handle, source, exec_timeout)

        self._record(key, generation, result, time.perf_counter() - started)
        if generation == self._generation:
            self._publish(generation, result)
            self.running = False
            self.running_language = None
        else:
            logger.debug(f"Discarding result of superseded run {generation} ({key})")
        return result

    async def _acquire(self, key: str):
        self.loading[key] = True
        try:
            handle = await self.registry.get_runtime(key, timeout=self.acquisition_timeout)
        except RuntimeTimedOut as e:
            return None, RuntimeResult.failure(str(e))
        except Exception as e:
            logger.error(f"{key} environment failed to initialise: {e}")
            return None, RuntimeResult.failure(f"{display_name(key)} environment failed to initialise")
        finally:
            self.loading[key] = False
        self.handles[key] = handle
        return handle, None

    async def _execute(self, key: str, handle: RuntimeHandle, source: str,
                       timeout: Optional[float]) -> RuntimeResult:
        try:
            if timeout is None:
                result = await execute_handle(handle, source)
            else:
                result = await asyncio.wait_for(execute_handle(handle, source), timeout)
        except asyncio.TimeoutError:
            return RuntimeResult.failure(str(RuntimeTimedOut(key, timeout, phase='execution')))
        except Exception as e:
            logger.exception(f"{key} engine raised during execution")
            return RuntimeResult.failure(f"{type(e).__name__}: {e}")

        if not isinstance(result, RuntimeResult):
            return RuntimeResult(output='' if result is None else str(result))
        return result

    # ------------------------------------------------------------------
    # editors
    # ------------------------------------------------------------------

    def create_renderer(self, language: str, loader: EditorLibraryLoader, viewport: Viewport,
                        container: Rect, config: Optional[ViewportConfig] = None,
                        theme: str = 'vs-light', height: int = 300,
                        options: Optional[Dict[str, Any]] = None) -> ViewportGatedRenderer:
        """Viewport-gated editor bound to this orchestrator's copy of the source."""
        key = self._require(language)
        editor_language = get_language_config(key).editor_language
        factory = make_editor_factory(editor_language, self.code[key], theme=theme, height=height,
                                      options=options, on_change=partial(self.update_code, key))
        renderer = ViewportGatedRenderer(loader, factory, viewport, container, config,
                                         on_visibility_change=partial(self._on_visibility, key))
        self.renderers[key] = renderer
        return renderer

    # ------------------------------------------------------------------
    # state
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        return {
            'output': self.output,
            'error': self.error,
            'running': self.running,
            'running_language': self.running_language,
            'loading': dict(self.loading),
            'visible': dict(self.visible),
            'visible_editors': sum(1 for shown in self.visible.values() if shown),
            'languages': list(self.languages),
            'primary': self.primary,
            'secondary': self.secondary,
            'comparison_mode': self.comparison_mode,
        }

    def get_stats(self) -> Dict[str, Dict[str, Any]]:
        return {
            lang: {
                'runs': s.runs,
                'failures': s.failures,
                'avg_time': round(s.total_time / s.runs, 4) if s.runs else 0.0,
            }
            for lang, s in self.stats.items()
        }

    def get_editor_metrics(self) -> Dict[str, Any]:
        """Visible and mounted editor counts plus per-language mount durations."""
        mount_times = {lang: round(r.mount_time, 4)
                       for lang, r in self.renderers.items() if r.mount_time is not None}
        return {
            'visible_editors': sum(1 for shown in self.visible.values() if shown),
            'mounted_editors': len(mount_times),
            'mount_times': mount_times,
        }

    def get_history(self, limit: int = 20) -> List[Dict[str, Any]]:
        return [record.to_dict() for record in self.history[-limit:]]

    def close(self) -> None:
        """Stop observing the registry. In-flight acquisitions keep running."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    def _resolve(self, language: Optional[str]) -> Optional[str]:
        if language is None:
            return self.primary
        lang_id = resolve_language_id(language)
        if lang_id is None or lang_id.value not in self.code:
            return None
        return lang_id.value

    def _require(self, language: str) -> str:
        key = self._resolve(language)
        if key is None:
            raise UnsupportedLanguageError(language)
        return key

    def _publish(self, generation: int, result: RuntimeResult) -> None:
        if generation != self._generation:
            return
        self.output, self.error = result.output, result.error

    def _record(self, key: str, generation: int, result: RuntimeResult, duration: float) -> None:
        stats = self.stats[key]
        stats.runs += 1
        stats.total_time += duration
        if not result.success:
            stats.failures += 1

        self.history.append(RunRecord(key, result.success, duration, generation, result.error))
        if len(self.history) > self.MAX_HISTORY:
            self.history.pop(0)

        if result.success:
            logger.info(f"Ran {key} in {duration:.3f}s")
        else:
            logger.info(f"Ran {key} in {duration:.3f}s with error: {result.error}")

    def _on_runtime_ready(self, language: str, handle: RuntimeHandle) -> None:
        self.handles[language] = handle
        self.loading[language] = False

    def _on_visibility(self, language: str, visible: bool) -> None:
        self.visible[language] = visible
