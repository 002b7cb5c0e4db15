"""
Compiler proxy routes - server-side paiza.io runners for Java and Swift.

Browsers cannot call paiza.io directly (no CORS), so these routes forward the
submitted source as-is (no entry-point wrapping) and relay the result.

    POST /api/java   {code}  →  {output, error}
    POST /api/swift  {code}  →  {output, error}

Status codes: 400 empty code, 408 upstream timeout, 503 network failure or
upstream non-OK, 500 anything unexpected.

Call  init_compiler_proxy(app)  after the runtime services are attached.
"""

import logging

import requests
from flask import Blueprint, current_app, jsonify, request

from runtime_core.exceptions import RemoteServiceError
from runtime_core.languages import LanguageID, display_name
from runtime_core.remote_compilers import PaizaRuntime

logger = logging.getLogger('polyrun.web')

compiler_bp = Blueprint('compiler_proxy', __name__)


def _proxy(language: str):
    data = request.get_json(silent=True) or {}
    code = data.get('code')
    if not code or not isinstance(code, str) or not code.strip():
        return jsonify({'output': '', 'error': 'Code must not be empty'}), 400

    services = current_app.extensions['polyrun']
    runner = PaizaRuntime(language, services.config.remote, services.session)
    try:
        result = services.loop.run(runner.submit(code))
    except requests.exceptions.Timeout:
        logger.warning(f"paiza.io timed out for {language}")
        return jsonify({'output': '',
                        'error': 'Request timed out, please check your network connection and retry'}), 408
    except requests.exceptions.RequestException as e:
        logger.error(f"paiza.io request failed for {language}: {e}")
        return jsonify({'output': '', 'error': 'Network connection failed, please retry later'}), 503
    except RemoteServiceError as e:
        logger.error(f"paiza.io unavailable for {language}: {e}")
        return jsonify({'output': '',
                        'error': 'Code execution service is temporarily unavailable, please retry later'}), 503
    except Exception as e:
        logger.exception(f"{language} proxy failed")
        return jsonify({'output': '', 'error': f'{display_name(language)} execution failed: {e}'}), 500

    return jsonify(result.to_dict())


@compiler_bp.route('/api/java', methods=['POST'])
def run_java():
    """Compile and run Java source on paiza.io."""
    return _proxy(LanguageID.JAVA.value)


@compiler_bp.route('/api/swift', methods=['POST'])
def run_swift():
    """Compile and run Swift source on paiza.io."""
    return _proxy(LanguageID.SWIFT.value)


def init_compiler_proxy(app) -> None:
    app.register_blueprint(compiler_bp)
