"""
Flask web interface for the runtime orchestrator.

REST surface over the process-scoped runtime services:

    POST /api/run                {language, code, timeout?} → {output, error}
    GET  /api/runtimes           per-language acquisition state
    GET  /api/editor             editor engine loader state
    POST /api/editor/initialize  load the editor engine (CDN failover)
    GET  /api/cdn/health         reachability of every known mirror
    POST /api/java, /api/swift   paiza.io proxy (see compiler_proxy.py)

Flask handlers are synchronous; every coroutine is submitted to the
services' shared event loop so the registry cache is shared across requests.
"""

import logging
import os
from typing import Optional

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS

from runtime_core.config import RuntimeConfig
from runtime_core.exceptions import EditorLoadError
from runtime_core.languages import LANGUAGE_CONFIGS, resolve_language_id
from runtime_core.models import CodeBlock
from runtime_core.services import RuntimeServices
from web_interface.compiler_proxy import init_compiler_proxy

logger = logging.getLogger('polyrun.web')

runtime_bp = Blueprint('runtime', __name__)


def _services() -> RuntimeServices:
    return current_app.extensions['polyrun']


async def _run_block(services: RuntimeServices, language: str, code: str,
                     timeout: Optional[float]):
    orchestrator = services.create_orchestrator([CodeBlock(language, code)])
    try:
        return await orchestrator.run(language, timeout=timeout)
    finally:
        orchestrator.close()


# ==================== EXECUTION ====================

@runtime_bp.route('/api/run', methods=['POST'])
def run_code():
    """Run one code block and return ``{output, error}``."""
    data = request.get_json(silent=True) or {}
    language = data.get('language') or data.get('lang') or ''
    code = data.get('code', data.get('source', ''))

    lang_id = resolve_language_id(language)
    if lang_id is None:
        return jsonify({'output': '', 'error': f'Unsupported language: {language}'}), 400
    if not isinstance(code, str) or not code.strip():
        return jsonify({'output': '', 'error': 'Code must not be empty'}), 400

    timeout = data.get('timeout')
    try:
        timeout = float(timeout) if timeout is not None else None
    except (TypeError, ValueError):
        return jsonify({'output': '', 'error': f'Invalid timeout: {timeout!r}'}), 400

    services = _services()
    result = services.loop.run(_run_block(services, lang_id.value, code, timeout))
    logger.info(f"/api/run {lang_id.value}: {'ok' if result.success else 'error'}")
    return jsonify({**result.to_dict(), 'language': lang_id.value})


@runtime_bp.route('/api/runtimes', methods=['GET'])
def get_runtimes():
    """Acquisition state of every registered language."""
    services = _services()
    status = services.loop.call(services.registry.get_status)
    runtimes = []
    for language, entry in status.items():
        config = LANGUAGE_CONFIGS.get(resolve_language_id(language))
        runtimes.append({
            'language': language,
            'name': config.name if config else language,
            'family': config.family.value if config else None,
            'preload': services.registry.should_preload(language),
            **entry,
        })
    return jsonify({'success': True, 'runtimes': runtimes, 'total': len(runtimes)})


# ==================== EDITOR ENGINE ====================

@runtime_bp.route('/api/editor', methods=['GET'])
def get_editor_status():
    services = _services()
    return jsonify({'success': True, **services.loop.call(services.editor_loader.get_status)})


@runtime_bp.route('/api/editor/initialize', methods=['POST'])
def initialize_editor():
    """Load the editor engine; concurrent requests share one attempt."""
    services = _services()
    try:
        services.loop.run(services.editor_loader.initialize())
    except EditorLoadError as e:
        logger.error(f"Editor engine failed to load: {e}")
        return jsonify({'success': False, 'error': str(e),
                        **services.editor_loader.get_status()}), 503
    return jsonify({'success': True, **services.editor_loader.get_status()})


# ==================== CDN ====================

@runtime_bp.route('/api/cdn/health', methods=['GET'])
def get_cdn_health():
    services = _services()
    mirrors = services.loop.run(services.cdn_health())
    return jsonify({
        'success': True,
        'mirrors': mirrors,
        'healthy': sum(1 for ok in mirrors.values() if ok),
        'total': len(mirrors),
    })


# ==================== APP FACTORY ====================

def create_app(services: Optional[RuntimeServices] = None) -> Flask:
    """Build the Flask app around ``services`` (a fresh set from env when omitted)."""
    app = Flask(__name__)
    CORS(app)
    app.extensions['polyrun'] = services or RuntimeServices(RuntimeConfig.from_env())
    app.register_blueprint(runtime_bp)
    init_compiler_proxy(app)
    return app


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO,
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    host = os.environ.get('POLYRUN_HOST', '0.0.0.0')
    port = int(os.environ.get('POLYRUN_PORT', '5002'))

    print("Starting polyrun web interface...")
    print(f"Access the API at: http://localhost:{port}")
    create_app().run(host=host, port=port, debug=False)
