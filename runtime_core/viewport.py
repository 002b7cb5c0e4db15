"""
Viewport-Gated Renderer - defer building editors until they are (nearly) visible.

    OFFSCREEN ──enters viewport──▶ PENDING_RENDER ──debounce──▶ MOUNTED
        ▲                              │
        └────── leaves before ─────────┘
                 debounce

    loader failure during PENDING_RENDER ──▶ ERROR (terminal)

Visibility is computed geometrically: a ``Viewport`` (the scrolling root)
notifies its ``IntersectionObserver``s whenever it scrolls or resizes; each
observer tests its target rectangle against the viewport expanded by a root
margin, so editors start rendering slightly before they scroll into view.

A mounted editor is never torn down when it leaves the viewport (that would
lose in-progress edits); the renderer only reports the visibility change
upward.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .config import ViewportConfig
from .editor_loader import EditorLibraryLoader
from .observers import SubscriberList

logger = logging.getLogger(__name__)


# =============================================================================
# GEOMETRY
# =============================================================================

@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in page coordinates (px)."""
    top: float
    left: float
    width: float
    height: float

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def area(self) -> float:
        return max(self.width, 0.0) * max(self.height, 0.0)

    def expand(self, margin: float) -> 'Rect':
        return Rect(self.top - margin, self.left - margin,
                    self.width + 2 * margin, self.height + 2 * margin)

    def intersection(self, other: 'Rect') -> Optional['Rect']:
        top = max(self.top, other.top)
        left = max(self.left, other.left)
        bottom = min(self.bottom, other.bottom)
        right = min(self.right, other.right)
        if bottom < top or right < left:
            return None
        return Rect(top, left, right - left, bottom - top)


@dataclass(frozen=True)
class IntersectionEntry:
    is_intersecting: bool
    intersection_ratio: float


class Viewport:
    """The scrolling root that observers measure against."""

    def __init__(self, width: float, height: float, top: float = 0.0, left: float = 0.0):
        self.rect = Rect(top, left, width, height)
        self._listeners = SubscriberList('viewport')

    def scroll_to(self, top: float, left: Optional[float] = None) -> None:
        self.rect = Rect(top, self.rect.left if left is None else left,
                         self.rect.width, self.rect.height)
        self._listeners.notify()

    def resize(self, width: float, height: float) -> None:
        self.rect = Rect(self.rect.top, self.rect.left, width, height)
        self._listeners.notify()

    def add_listener(self, callback: Callable[[], None]) -> Callable[[], None]:
        return self._listeners.add(callback)


class IntersectionObserver:
    """Reports when a target crosses the (margin-expanded) viewport.

    The first measurement after ``observe()`` is always reported; after
    that the callback fires only when the intersecting state flips.
    """

    def __init__(self, viewport: Viewport, callback: Callable[[IntersectionEntry], None],
                 root_margin: float = 200.0, threshold: float = 0.1):
        self.viewport = viewport
        self.callback = callback
        self.root_margin = root_margin
        self.threshold = threshold
        self.target: Optional[Rect] = None
        self._last: Optional[bool] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    def observe(self, target: Rect) -> None:
        self.target = target
        self._last = None
        if self._unsubscribe is None:
            self._unsubscribe = self.viewport.add_listener(self._measure)
        self._measure()

    def move(self, target: Rect) -> None:
        """Re-layout of the observed element."""
        self.target = target
        self._measure()

    def disconnect(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.target = None

    def measure(self) -> IntersectionEntry:
        root = self.viewport.rect.expand(self.root_margin)
        overlap = self.target.intersection(root) if self.target else None
        if overlap is None:
            return IntersectionEntry(False, 0.0)
        if self.target.area == 0:
            return IntersectionEntry(True, 1.0)
        ratio = overlap.area / self.target.area
        return IntersectionEntry(ratio >= self.threshold and ratio > 0, ratio)

    def _measure(self) -> None:
        if self.target is None:
            return
        entry = self.measure()
        if entry.is_intersecting != self._last:
            self._last = entry.is_intersecting
            self.callback(entry)


# =============================================================================
# EDITOR INSTANCES
# =============================================================================

@dataclass
class EditorInstance:
    """A constructed editor widget bound to the loaded engine."""
    language: str
    value: str
    module_path: Optional[str] = None
    theme: str = 'vs-light'
    height: int = 300
    options: Dict[str, Any] = field(default_factory=dict)
    on_change: Optional[Callable[[str], None]] = None
    disposed: bool = False

    def set_value(self, value: str) -> None:
        self.value = value
        if self.on_change is not None:
            self.on_change(value)

    def dispose(self) -> None:
        self.disposed = True


DEFAULT_EDITOR_OPTIONS: Dict[str, Any] = {
    'minimap': {'enabled': False},
    'fontSize': 14,
    'lineNumbers': 'on',
    'roundedSelection': False,
    'scrollBeyondLastLine': False,
    'automaticLayout': True,
}

EditorFactory = Callable[[Optional[str]], Any]


def make_editor_factory(language: str, value: str, theme: str = 'vs-light', height: int = 300,
                        options: Optional[Dict[str, Any]] = None,
                        on_change: Optional[Callable[[str], None]] = None) -> EditorFactory:
    """Factory building an ``EditorInstance`` once the engine module path is known."""
    merged = {**DEFAULT_EDITOR_OPTIONS, **(options or {})}

    def factory(module_path: Optional[str]) -> EditorInstance:
        return EditorInstance(language=language, value=value, module_path=module_path,
                              theme=theme, height=height, options=dict(merged),
                              on_change=on_change)

    return factory


# =============================================================================
# RENDERER
# =============================================================================

class RenderState(Enum):
    OFFSCREEN      = "offscreen"
    PENDING_RENDER = "pending_render"
    MOUNTED        = "mounted"
    ERROR          = "error"


@dataclass(frozen=True)
class RenderOutput:
    """What the container shows right now."""
    kind: str                 # 'placeholder' | 'loading' | 'error' | 'editor'
    text: str = ''
    editor: Any = None


PLACEHOLDER_TEXT = 'Scroll here to view the editor'
LOADING_TEXT = 'Loading editor...'


class ViewportGatedRenderer:
    """Wraps one editor instance behind viewport visibility."""

    def __init__(self, loader: EditorLibraryLoader, editor_factory: EditorFactory,
                 viewport: Viewport, container: Rect,
                 config: Optional[ViewportConfig] = None,
                 on_visibility_change: Optional[Callable[[bool], None]] = None):
        self.config = config or ViewportConfig()
        self.loader = loader
        self.editor_factory = editor_factory
        self.viewport = viewport
        self.container = container
        self.on_visibility_change = on_visibility_change

        self.state = RenderState.OFFSCREEN
        self.in_viewport = False
        self.editor: Any = None
        self.error: Optional[Exception] = None
        self.mount_time: Optional[float] = None

        self._observer: Optional[IntersectionObserver] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._mount_task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._epoch = 0

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def mount(self) -> None:
        """Start observing the container. Must run on the event loop thread."""
        self._loop = asyncio.get_running_loop()
        self._epoch += 1
        self._observer = IntersectionObserver(
            self.viewport, self._on_intersection,
            root_margin=self.config.root_margin,
            threshold=self.config.threshold,
        )
        self._observer.observe(self.container)

    def unmount(self) -> None:
        """Stop observing. A mount still waiting on the loader is abandoned."""
        self._epoch += 1
        if self._observer is not None:
            self._observer.disconnect()
            self._observer = None
        self._cancel_timer()
        if self.state == RenderState.PENDING_RENDER:
            self.state = RenderState.OFFSCREEN
        if self.editor is not None and hasattr(self.editor, 'dispose'):
            self.editor.dispose()

    def relayout(self, container: Rect) -> None:
        self.container = container
        if self._observer is not None:
            self._observer.move(container)

    async def wait_mounted(self) -> None:
        """Await an in-progress mount (no-op when none is running)."""
        if self._mount_task is not None:
            await asyncio.shield(self._mount_task)

    # ------------------------------------------------------------------
    # rendering
    # ------------------------------------------------------------------

    def render(self) -> RenderOutput:
        if self.state == RenderState.ERROR:
            return RenderOutput('error', f'Editor failed to load: {self.error}')
        if self.state == RenderState.MOUNTED:
            return RenderOutput('editor', editor=self.editor)
        if not self.in_viewport and self.state == RenderState.OFFSCREEN:
            return RenderOutput('placeholder', PLACEHOLDER_TEXT)
        return RenderOutput('loading', LOADING_TEXT)

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------

    def _on_intersection(self, entry: IntersectionEntry) -> None:
        visible = entry.is_intersecting
        self.in_viewport = visible

        if self.state == RenderState.OFFSCREEN and visible:
            self.state = RenderState.PENDING_RENDER
            self._timer = self._loop.call_later(self.config.debounce, self._on_debounce)
        elif self.state == RenderState.PENDING_RENDER and not visible and self._timer is not None:
            self._cancel_timer()
            self.state = RenderState.OFFSCREEN
        elif self.state == RenderState.MOUNTED and self.on_visibility_change is not None:
            self.on_visibility_change(visible)

    def _on_debounce(self) -> None:
        self._timer = None
        self._mount_task = asyncio.ensure_future(self._mount_editor(self._epoch))

    async def _mount_editor(self, epoch: int) -> None:
        started = time.perf_counter()
        try:
            await self.loader.initialize()
        except Exception as e:
            if epoch != self._epoch:
                return
            self.state = RenderState.ERROR
            self.error = e
            logger.error(f"Editor could not be mounted: {e}")
            return

        if epoch != self._epoch:
            logger.debug("Renderer unmounted while the editor engine loaded; not mounting")
            return
        self.editor = self.editor_factory(self.loader.module_path)
        self.state = RenderState.MOUNTED
        self.mount_time = time.perf_counter() - started
        logger.debug(f"Editor mounted in {self.mount_time:.3f}s")
        if self.on_visibility_change is not None:
            self.on_visibility_change(True)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
