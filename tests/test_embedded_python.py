"""
Tests for the embedded Python interpreter bridge and its import scanner.
"""

import asyncio
import io
import sys
import threading
import time
from unittest.mock import AsyncMock, Mock, patch

import pytest

from runtime_core import dependency_resolver
from runtime_core.config import PythonRuntimeConfig
from runtime_core.dependency_resolver import resolve_packages, scan_imports
from runtime_core.embedded_python import (
    EmbeddedPythonFactory, EmbeddedPythonRuntime, PackageInstaller, PipInstaller, StdoutCapture,
)
from runtime_core.exceptions import CDNUnavailableError, DependencyInstallError
from runtime_core.models import CodeBlock
from runtime_core.orchestrator import ExecutionOrchestrator
from runtime_core.runtime_registry import RuntimeRegistry

INDEX = 'https://mirror.example/simple'


class RecordingInstaller(PackageInstaller):
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.installed = []

    async def install(self, package, index_url):
        if package in self.failing:
            raise DependencyInstallError(package, 'No matching distribution found')
        self.installed.append((package, index_url))


@pytest.fixture
def installer():
    return RecordingInstaller()


@pytest.fixture
def runtime(installer):
    return EmbeddedPythonRuntime(INDEX, installer)


class TestExecute:
    """Test cases for EmbeddedPythonRuntime.execute."""

    def test_print_is_captured(self, runtime):
        """Test printed output is captured."""
        result = asyncio.run(runtime.execute("print('hi')"))
        assert result.output == 'hi\n'
        assert result.error is None

    def test_exception_becomes_error(self, runtime):
        """Test an exception is reported as an error."""
        result = asyncio.run(runtime.execute('1/0'))
        assert result.output == ''
        assert result.error == 'ZeroDivisionError: division by zero'

    def test_output_before_exception_is_dropped(self, runtime):
        """Test output printed before an exception is discarded."""
        result = asyncio.run(runtime.execute("print('partial')\nraise ValueError('bad value')"))
        assert result.output == ''
        assert result.error == 'ValueError: bad value'

    def test_syntax_error(self, runtime):
        """Test syntax errors are reported."""
        result = asyncio.run(runtime.execute('def broken(:'))
        assert result.error.startswith('SyntaxError')

    def test_system_exit_is_contained(self, runtime):
        """Test SystemExit does not escape the runtime."""
        result = asyncio.run(runtime.execute('raise SystemExit(3)'))
        assert result.error == 'SystemExit: 3'

    def test_stdlib_import_needs_no_install(self, runtime, installer):
        """Test stdlib imports trigger no install."""
        result = asyncio.run(runtime.execute("import json\nprint(json.dumps({'a': 1}))"))
        assert result.output == '{"a": 1}\n'
        assert installer.installed == []

    def test_namespace_persists_between_runs(self, runtime):
        """Test globals persist between runs."""
        asyncio.run(runtime.execute('counter = 41'))
        result = asyncio.run(runtime.execute('counter += 1\nprint(counter)'))
        assert result.output == '42\n'

    def test_reset_namespace(self, runtime):
        """Test resetting the namespace drops earlier globals."""
        asyncio.run(runtime.execute('value = 1'))
        runtime.reset_namespace()
        result = asyncio.run(runtime.execute('print(value)'))
        assert result.error == "NameError: name 'value' is not defined"

    def test_stdout_restored(self, runtime):
        """Test sys.stdout is restored after a run."""
        before = sys.stdout
        asyncio.run(runtime.execute("print('x')"))
        asyncio.run(runtime.execute('1/0'))
        assert sys.stdout is before


class TestDynamicImports:
    """Test cases for on-demand package installation."""

    def test_missing_package_installed_from_index(self, runtime, installer, monkeypatch):
        """Test a missing package is installed from the index."""
        monkeypatch.setattr(dependency_resolver, 'is_importable', lambda module: False)
        code = "try:\n    import sklearn\nexcept ImportError:\n    pass\nprint('ok')"
        result = asyncio.run(runtime.execute(code))
        assert result.output == 'ok\n'
        assert installer.installed == [('scikit-learn', INDEX)]
        assert 'scikit-learn' in runtime.installed

    def test_install_failure_is_skipped(self, monkeypatch):
        """Test a failed install is skipped and the run carries on."""
        monkeypatch.setattr(dependency_resolver, 'is_importable', lambda module: False)
        installer = RecordingInstaller(failing={'opencv-python'})
        runtime = EmbeddedPythonRuntime(INDEX, installer)
        code = "try:\n    import cv2\nexcept ImportError:\n    pass\nprint('after')"

        result = asyncio.run(runtime.execute(code))
        assert result.output == 'after\n'
        assert result.error is None
        assert runtime.failed_packages == {'opencv-python'}

    def test_installed_package_not_reinstalled(self, runtime, installer, monkeypatch):
        """Test an installed package is not installed again."""
        monkeypatch.setattr(dependency_resolver, 'is_importable', lambda module: False)
        code = "try:\n    import PIL\nexcept ImportError:\n    pass"
        asyncio.run(runtime.execute(code))
        asyncio.run(runtime.execute(code))
        assert installer.installed == [('pillow', INDEX)]

    def test_preload_packages_installed(self, installer):
        """Test preload packages are installed during warm-up."""
        runtime = EmbeddedPythonRuntime(INDEX, installer,
                                        PythonRuntimeConfig(preload_packages=['numpy']))
        asyncio.run(runtime.execute('x = 1'))
        assert installer.installed == [('numpy', INDEX)]

    def test_dynamic_imports_disabled(self, installer, monkeypatch):
        """Test no installs happen when dynamic imports are disabled."""
        monkeypatch.setattr(dependency_resolver, 'is_importable', lambda module: False)
        runtime = EmbeddedPythonRuntime(INDEX, installer,
                                        PythonRuntimeConfig(allow_dynamic_imports=False))
        asyncio.run(runtime.execute("try:\n    import torch\nexcept ImportError:\n    pass"))
        assert installer.installed == []


class TestPipInstaller:
    """Test cases for the subprocess-backed installer."""

    def test_runs_pip_against_index(self):
        """Test pip is invoked against the configured index."""
        completed = Mock(returncode=0, stdout='', stderr='')
        with patch('runtime_core.embedded_python.run_subprocess', return_value=completed) as run:
            asyncio.run(PipInstaller(python='/usr/bin/python3').install('pillow', INDEX))

        cmd = run.call_args.args[0]
        assert cmd[:4] == ['/usr/bin/python3', '-m', 'pip', 'install']
        assert cmd[cmd.index('--index-url') + 1] == INDEX
        assert cmd[-1] == 'pillow'

    def test_pip_failure_raises(self):
        """Test a failing pip run raises."""
        completed = Mock(returncode=1, stdout='',
                         stderr='ERROR: No matching distribution found for nopkg')
        with patch('runtime_core.embedded_python.run_subprocess', return_value=completed):
            with pytest.raises(DependencyInstallError) as exc_info:
                asyncio.run(PipInstaller().install('nopkg', INDEX))
        assert exc_info.value.package == 'nopkg'
        assert 'No matching distribution' in str(exc_info.value)


class TestFactory:
    """Test cases for EmbeddedPythonFactory."""

    def test_uses_resolved_mirror(self, installer):
        """Test the factory uses the resolved package mirror."""
        resolver = Mock()
        resolver.resolve_resource = AsyncMock(return_value=INDEX)
        runtime = asyncio.run(EmbeddedPythonFactory(resolver, installer=installer)())
        assert runtime.index_url == INDEX
        assert 'json' in runtime.preloaded

    def test_falls_back_to_default_index(self, installer):
        """Test the factory falls back to the default index."""
        resolver = Mock()
        resolver.resolve_resource = AsyncMock(side_effect=CDNUnavailableError('down', []))
        factory = EmbeddedPythonFactory(resolver, PythonRuntimeConfig(), installer)

        first = asyncio.run(factory())
        second = asyncio.run(factory())
        assert first.index_url == 'https://pypi.org/simple'
        assert second.index_url == first.index_url
        assert resolver.resolve_resource.await_count == 1


class TestImportScanning:
    """Test cases for the regex import scanner."""

    def test_scan_imports(self):
        """Test top-level imports are found in source."""
        code = (
            "import numpy as np, pandas\n"
            "from os.path import join\n"
            "    import json\n"
            "import xml.etree.ElementTree\n"
            "important = 1\n"
        )
        assert scan_imports(code) == ['numpy', 'pandas', 'os', 'json', 'xml']

    def test_duplicates_collapsed(self):
        """Test repeated imports are reported once."""
        assert scan_imports('import math\nimport math\nfrom math import pi') == ['math']

    def test_resolve_maps_to_distributions(self):
        """Test module names map to their distribution names."""
        code = 'import sklearn\nimport cv2\nfrom PIL import Image\nimport json\nimport mystery'
        assert resolve_packages(code, importable=lambda module: False) == [
            'scikit-learn', 'opencv-python', 'pillow']

    def test_resolve_skips_importable_and_skipped(self):
        """Test importable and skipped modules are not resolved."""
        code = 'import numpy\nimport pandas'
        assert resolve_packages(code, importable=lambda module: module == 'numpy') == ['pandas']
        assert resolve_packages(code, skip={'pandas'}, importable=lambda module: False) == ['numpy']


class TestTimeoutsAndConcurrency:
    """Test cases for running snippets off the event loop."""

    SLOW_CODE = "import time\ntime.sleep(0.5)\nprint('done')"

    def test_execution_timeout_interrupts_wait(self, runtime):
        """Test a slow snippet reports a timeout instead of a late success."""
        registry = RuntimeRegistry({'python': lambda: runtime})
        orchestrator = ExecutionOrchestrator(registry, [CodeBlock('python', self.SLOW_CODE)],
                                             execution_timeout=0.05)

        async def scenario():
            started = time.perf_counter()
            result = await orchestrator.run()
            return result, time.perf_counter() - started

        before = sys.stdout
        result, elapsed = asyncio.run(scenario())
        assert result.error == 'python execution timed out after 0.05s'
        assert elapsed < 0.4
        assert sys.stdout is before

    def test_event_loop_keeps_running(self, runtime):
        """Test other coroutines make progress while a snippet sleeps."""
        ticks = []

        async def ticker():
            for _ in range(5):
                ticks.append(time.perf_counter())
                await asyncio.sleep(0.01)

        async def scenario():
            return await asyncio.gather(runtime.execute(self.SLOW_CODE), ticker())

        result, _ = asyncio.run(scenario())
        assert result.output == 'done\n'
        assert len(ticks) == 5
        assert ticks[-1] - ticks[0] < 0.4

    def test_concurrent_runs_capture_their_own_output(self, installer):
        """Test overlapping runs never see each other's prints."""
        first = EmbeddedPythonRuntime(INDEX, installer)
        second = EmbeddedPythonRuntime(INDEX, installer)

        async def scenario():
            return await asyncio.gather(
                first.execute("import time\nprint('a1')\ntime.sleep(0.05)\nprint('a2')"),
                second.execute("import time\ntime.sleep(0.01)\nprint('b')"),
            )

        before = sys.stdout
        a, b = asyncio.run(scenario())
        assert a.output == 'a1\na2\n'
        assert b.output == 'b\n'
        assert sys.stdout is before


class TestStdoutCapture:
    """Test cases for the per-thread stdout router."""

    def test_other_threads_write_through(self):
        """Test only the capturing thread is redirected."""
        capture = StdoutCapture()
        original = io.StringIO()
        buffer = io.StringIO()

        with patch.object(sys, 'stdout', original):
            with capture.capture(buffer):
                print('captured')
                worker = threading.Thread(target=print, args=('passthrough',))
                worker.start()
                worker.join()
            assert sys.stdout is original

        assert buffer.getvalue() == 'captured\n'
        assert original.getvalue() == 'passthrough\n'
