#!/usr/bin/env python3
# Copyright (c) 2025 The Confidential Distributor developers
# Distributed under the MIT software license

"""
Confidential Distributor SDK Server - REST API for the distributor frontend

Endpoints:
  GET  /health                  - Liveness
  GET  /api/status              - Network, account, contract addresses
  GET  /api/balance             - Own encrypted balance handle
  GET  /api/balance/<address>   - Encrypted balance handle of any address
  POST /api/decrypt             - Decrypt a balance owned by the server account
  POST /api/faucet              - Mint test cETH to the server account
  POST /api/distribute          - Encrypt and distribute amounts to recipients

Failures answer {status, error}: 400 validation, 503 network, 409 otherwise.
"""

import logging
import time

from flask import Flask, jsonify, request
from flask_cors import CORS

from .config import Config
from .dist_types import ActionStatus
from .errors import ERROR_MARKER, DistributorError, NetworkFailure, ERRORS_BY_KIND
from .service import DistributorService

log = logging.getLogger(__name__)


def _status_code(kind: str) -> int:
    if kind in ("pending", "confirmed"):
        return 200
    cls = ERRORS_BY_KIND.get(kind)
    if cls is not None and cls.recoverable:
        return 400
    if cls is NetworkFailure:
        return 503
    return 409


def _action_response(result: ActionStatus):
    body = result.to_dict()
    if result.is_error:
        body["error"] = result.message
    return jsonify(body), _status_code(result.status)


def _error_response(error: DistributorError):
    return jsonify({"status": error.kind, "error": error.message}), _status_code(error.kind)


def create_app(service: DistributorService) -> Flask:
    """Build the Flask app around a service instance."""
    app = Flask(__name__)
    CORS(app)  # Allow cross-origin for the frontend

    @app.errorhandler(DistributorError)
    def handle_distributor_error(error):
        return _error_response(error)

    # =========================================================================
    # HEALTH
    # =========================================================================

    @app.route('/health')
    def health():
        """Simple health check - returns ok if server is running"""
        return jsonify({'ok': True, 'timestamp': int(time.time())})

    @app.route('/api/status')
    def api_status():
        """Network and contract addresses"""
        status = service.status()
        status.update({'status': 'ok', 'timestamp': int(time.time())})
        return jsonify(status)

    # =========================================================================
    # QUERIES
    # =========================================================================

    @app.route('/api/balance')
    def api_own_balance():
        """Encrypted balance handle of the server account"""
        return jsonify({
            'address': service.address,
            'handle': service.own_balance_handle(),
        })

    @app.route('/api/balance/<address>')
    def api_balance(address):
        """Encrypted balance handle of any address"""
        return jsonify({
            'address': address,
            'handle': service.balance_handle(address),
        })

    @app.route('/api/decrypt', methods=['POST'])
    def api_decrypt():
        """
        Decrypt a balance.

        Request:
        {
            "address": "0x..."   # optional, default: server account
        }
        """
        data = request.get_json(silent=True) or {}
        address = data.get('address') or service.address
        value = service.decrypt_balance(address)
        if value == ERROR_MARKER:
            return jsonify({'address': address, 'value': value,
                            'status': 'Error', 'error': 'Decryption failed'}), 409
        return jsonify({'address': address, 'value': value, 'status': 'ok'})

    # =========================================================================
    # ACTIONS
    # =========================================================================

    @app.route('/api/faucet', methods=['POST'])
    def api_faucet():
        """
        Mint test cETH to the server account.

        Request:
        {
            "amount": "1.5"      # cETH, up to 6 decimals
        }
        """
        data = request.get_json(silent=True) or {}
        return _action_response(service.request_faucet(str(data.get('amount', ''))))

    @app.route('/api/distribute', methods=['POST'])
    def api_distribute():
        """
        Encrypt and distribute.

        Request:
        {
            "rows": [
                {"address": "0x...", "amount": "0.5"},
                ...
            ]
        }
        """
        data = request.get_json(silent=True) or {}
        rows = data.get('rows')
        if not isinstance(rows, list):
            return jsonify({'status': 'ParseError', 'error': 'Missing rows'}), 400
        return _action_response(service.distribute(rows))

    return app


# =============================================================================
# MAIN
# =============================================================================

def main(port: int = 0):
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s'
    )
    config = Config.from_env(env_file=".env")
    service = DistributorService.from_config(config)
    port = port or config.http_port

    log.info(f"Starting Distributor Server on port {port}")
    log.info(f"Network: {config.network}")
    log.info(f"Token: {service.token_address}")
    log.info(f"Distributor: {service.distributor_address}")

    create_app(service).run(host='0.0.0.0', port=port, debug=False)


if __name__ == '__main__':
    main()
