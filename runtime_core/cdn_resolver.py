"""
CDN Health Resolver - mirror failover for static asset bundles.

Given an ordered list of mirror URLs, probe each one with a lightweight HEAD
request (bounded timeout) and hand back the first reachable one. Both the
editor loader (Monaco assets) and the embedded Python interpreter (package
index) go through here.

The resolver does NOT remember what it selected. Callers that want a
process-lifetime choice memoize it at their own layer.

Usage:
    resolver = CDNResolver()
    base = await resolver.resolve_resource(MONACO_EDITOR, '/vs/loader.min.js')
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

import requests

from .config import MONACO_VERSION, ResolverConfig
from .exceptions import CDNUnavailableError

logger = logging.getLogger(__name__)

HealthCheck = Callable[[str], Awaitable[bool]]


@dataclass(frozen=True)
class CDNMirror:
    """One mirror of an asset bundle. Lower priority is tried first."""
    name: str
    base_url: str
    priority: int


@dataclass
class CDNResource:
    """A named asset bundle and the mirrors that serve it."""
    name: str
    mirrors: List[CDNMirror] = field(default_factory=list)
    health_check: Optional[HealthCheck] = None

    def sorted_mirrors(self) -> List[CDNMirror]:
        return sorted(self.mirrors, key=lambda m: m.priority)


# ─── Predefined resources ────────────────────────────────────────────

MONACO_EDITOR = CDNResource(
    name='monaco-editor',
    mirrors=[
        CDNMirror('jsDelivr',        f'https://cdn.jsdelivr.net/npm/monaco-editor@{MONACO_VERSION}/min', 1),
        CDNMirror('jsDelivr fastly', f'https://fastly.jsdelivr.net/npm/monaco-editor@{MONACO_VERSION}/min', 2),
        CDNMirror('UNPKG',           f'https://unpkg.com/monaco-editor@{MONACO_VERSION}/min', 3),
        CDNMirror('bootcdn',         f'https://cdn.bootcdn.net/ajax/libs/monaco-editor/{MONACO_VERSION}/min', 4),
    ],
)

PACKAGE_INDEX = CDNResource(
    name='package-index',
    mirrors=[
        CDNMirror('PyPI',     'https://pypi.org/simple', 1),
        CDNMirror('Tsinghua', 'https://pypi.tuna.tsinghua.edu.cn/simple', 2),
        CDNMirror('Aliyun',   'https://mirrors.aliyun.com/pypi/simple', 3),
        CDNMirror('USTC',     'https://pypi.mirrors.ustc.edu.cn/simple', 4),
    ],
)


class CDNResolver:
    """Probes mirror candidates in order and returns the first healthy one."""

    def __init__(self, config: Optional[ResolverConfig] = None,
                 session: Optional[requests.Session] = None):
        self.config = config or ResolverConfig()
        self._session = session or requests.Session()

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------

    async def resolve(self, candidate_urls: Iterable[str],
                      health_check: Optional[HealthCheck] = None) -> str:
        """Return the first reachable URL, or raise ``CDNUnavailableError``."""
        candidates = list(candidate_urls)
        failures: List[Tuple[str, str]] = []

        for url in candidates:
            if health_check is not None:
                try:
                    healthy = await health_check(url)
                    reason = 'health check returned false'
                except Exception as e:
                    healthy, reason = False, str(e)
            else:
                healthy, reason = await asyncio.to_thread(self._probe, url)

            if healthy:
                logger.info(f"CDN probe passed: {url}")
                return url

            logger.warning(f"CDN probe failed: {url} ({reason})")
            failures.append((url, reason))

        raise CDNUnavailableError(
            f"All {len(candidates)} CDN candidates are unreachable", failures)

    async def resolve_resource(self, resource: CDNResource, path: str = '') -> str:
        """Probe ``mirror.base_url + path`` by priority; return the mirror's base URL."""
        mirrors = resource.sorted_mirrors()
        by_probe_url: Dict[str, str] = {f'{m.base_url}{path}': m.base_url for m in mirrors}
        selected = await self.resolve(by_probe_url.keys(), resource.health_check)
        base_url = by_probe_url[selected]
        logger.info(f"Using {resource.name} mirror: {base_url}")
        return base_url

    async def precheck(self, resources: Iterable[CDNResource]) -> Dict[str, bool]:
        """Probe every mirror of every resource concurrently. Never raises."""
        targets: List[Tuple[CDNResource, CDNMirror]] = [
            (resource, mirror) for resource in resources for mirror in resource.mirrors
        ]

        async def check(resource: CDNResource, mirror: CDNMirror) -> bool:
            if resource.health_check is not None:
                try:
                    return bool(await resource.health_check(mirror.base_url))
                except Exception as e:
                    logger.warning(f"Health check raised for {mirror.base_url}: {e}")
                    return False
            healthy, _ = await asyncio.to_thread(self._probe, mirror.base_url)
            return healthy

        results = await asyncio.gather(*(check(r, m) for r, m in targets))
        return {mirror.base_url: healthy for (_, mirror), healthy in zip(targets, results)}

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    def _probe(self, url: str) -> Tuple[bool, str]:
        """Blocking HEAD probe; runs on a worker thread."""
        try:
            response = self._session.head(
                url,
                timeout=self.config.probe_timeout,
                allow_redirects=True,
                headers={'Cache-Control': 'no-cache'},
            )
        except requests.exceptions.Timeout:
            return False, f'timed out after {self.config.probe_timeout}s'
        except requests.exceptions.RequestException as e:
            return False, str(e)

        if response.ok:
            return True, ''
        return False, f'HTTP {response.status_code}'
