"""
Native scripting bridge - JavaScript and TypeScript through Node.js.

Each call to ``execute()`` is isolated: the snippet is written to a temp file
behind a small prelude and run by a fresh ``node`` process on a worker
thread, so the event loop keeps serving other runs meanwhile. The prelude
replaces ``console.log`` with a collector and, on process exit, prints one
sentinel-tagged JSON line ``{output, error}`` that the bridge parses back.
TypeScript goes through the same path with Node's type-stripping flag.
"""

import asyncio
import json
import logging
import os
import re
import shutil
import subprocess
import tempfile
from typing import List, Optional

from .bridges import RuntimeHandle, run_subprocess
from .config import NativeScriptConfig
from .exceptions import RuntimeAcquisitionError
from .languages import LanguageID, display_name
from .models import RuntimeResult

logger = logging.getLogger(__name__)

RESULT_SENTINEL = '__POLYRUN_RESULT__'

PRELUDE = r"""
const __polyrunLogs = [];
let __polyrunError = null;
const __polyrunFormat = (value) => {
  if (Array.isArray(value)) return '[' + value.map(__polyrunFormat).join(', ') + ']';
  if (value !== null && typeof value === 'object') {
    try { return JSON.stringify(value); } catch (e) { return String(value); }
  }
  return String(value);
};
const __polyrunMessage = (e) => (e && e.message !== undefined ? e.message : String(e));
console.log = (...args) => { __polyrunLogs.push(args.map(__polyrunFormat).join(' ')); };
process.on('uncaughtException', (e) => { __polyrunError = __polyrunMessage(e); process.exitCode = 1; });
process.on('unhandledRejection', (e) => { __polyrunError = __polyrunMessage(e); process.exitCode = 1; });
process.on('exit', () => {
  process.stdout.write('\n' + '%s' + JSON.stringify({ output: __polyrunLogs.join('\n'), error: __polyrunError }) + '\n');
});
""" % RESULT_SENTINEL

# First "SomethingError: message" line Node prints for failures the prelude cannot see
NODE_ERROR_LINE = re.compile(r'^(\w*Error): (.*)$', re.MULTILINE)


def extract_error_message(stderr: str) -> str:
    match = NODE_ERROR_LINE.search(stderr or '')
    if match:
        return f'{match.group(1)}: {match.group(2)}'
    lines = [line for line in (stderr or '').strip().splitlines() if line.strip()]
    return lines[-1] if lines else ''


class NodeScriptRuntime(RuntimeHandle):
    """Runs one snippet per ``node`` process on a worker thread."""

    def __init__(self, language: str, node_path: str,
                 config: Optional[NativeScriptConfig] = None):
        self.language = language
        self.node_path = node_path
        self.config = config or NativeScriptConfig()

    @property
    def suffix(self) -> str:
        return '.ts' if self.language == LanguageID.TYPESCRIPT.value else '.js'

    def command(self, script_path: str) -> List[str]:
        flags = self.config.typescript_flags if self.language == LanguageID.TYPESCRIPT.value else []
        return [self.node_path, *flags, script_path]

    async def execute(self, code: str) -> RuntimeResult:
        return await asyncio.to_thread(self.run_script, code)

    def run_script(self, code: str) -> RuntimeResult:
        """Blocking run; the node process is killed after ``config.timeout``."""
        tmp_file = None
        try:
            tmp_fd, tmp_file = tempfile.mkstemp(suffix=self.suffix, prefix='polyrun_')
            with os.fdopen(tmp_fd, 'w', encoding='utf-8') as f:
                f.write(PRELUDE)
                f.write('\n')
                f.write(code)
                f.write('\n')

            proc = run_subprocess(self.command(tmp_file), capture_output=True, text=True,
                                  timeout=self.config.timeout)
            return self.parse_output(proc.stdout, proc.stderr, proc.returncode)
        except subprocess.TimeoutExpired:
            return RuntimeResult.failure(
                f'{display_name(self.language)} execution timed out after {self.config.timeout}s')
        except OSError as e:
            logger.error(f"Could not run node for {self.language}: {e}")
            return RuntimeResult.failure(str(e))
        finally:
            if tmp_file and os.path.exists(tmp_file):
                try:
                    os.unlink(tmp_file)
                except OSError as e:
                    logger.debug(f"Temp script {tmp_file} not removed: {e}")

    @staticmethod
    def parse_output(stdout: str, stderr: str, returncode: int) -> RuntimeResult:
        """Read the sentinel line; fall back to stderr when the prelude never ran."""
        for line in reversed((stdout or '').splitlines()):
            if line.startswith(RESULT_SENTINEL):
                try:
                    payload = json.loads(line[len(RESULT_SENTINEL):])
                except ValueError:
                    break
                if payload.get('error') is not None:
                    return RuntimeResult.failure(str(payload['error']))
                return RuntimeResult(output=payload.get('output') or '')

        if returncode != 0:
            return RuntimeResult.failure(
                extract_error_message(stderr) or f'Node.js exited with code {returncode}')
        return RuntimeResult(output=(stdout or '').strip('\n'))

    def describe(self) -> dict:
        info = super().describe()
        info['node_path'] = self.node_path
        return info


class NodeScriptFactory:
    """Bridge factory: fails acquisition when no ``node`` binary can be found."""

    def __init__(self, language: str, config: Optional[NativeScriptConfig] = None):
        self.language = language
        self.config = config or NativeScriptConfig()

    def __call__(self) -> NodeScriptRuntime:
        node_path = self.config.node_path or shutil.which('node')
        if not node_path:
            raise RuntimeAcquisitionError(
                'Node.js runtime not found on PATH; install Node.js to run '
                f'{display_name(self.language)}', self.language)
        logger.info(f"{self.language} runs on {node_path}")
        return NodeScriptRuntime(self.language, node_path, self.config)
