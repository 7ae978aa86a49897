"""HTTP surface: three report endpoints plus probes."""

import logging
from typing import Optional

from flask import Flask, Response, jsonify, request
from werkzeug.exceptions import HTTPException

from .auth import AccessGate
from .config import Settings, configure_logging
from .errors import ReportError
from .ga4 import AnalyticsBackend, GA4Backend
from .reports import PAGE_REPORT, TIMESERIES_REPORT, TRAFFIC_REPORT, ReportSpec, run_report
from .serialize import csv_filename, to_csv, to_json

logger = logging.getLogger(__name__)

API_KEY_HEADER = 'x-api-key'
NOTE_HEADER = 'X-Report-Note'

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'POST,GET,OPTIONS',
    'Access-Control-Allow-Headers': f'Content-Type, {API_KEY_HEADER}',
    'Access-Control-Expose-Headers': f'Content-Disposition, {NOTE_HEADER}',
}


def create_app(settings: Optional[Settings] = None, backend: Optional[AnalyticsBackend] = None) -> Flask:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = Flask(__name__)
    app.config['GA_SETTINGS'] = settings
    gate = AccessGate.from_settings(settings)
    backend = backend or GA4Backend(settings)
    logger.info("Access gate mode: %s", gate.mode)
    if gate.mode == 'open':
        logger.warning("No CLIENTS_JSON or API_KEY configured: every request is allowed")

    def handle(spec: ReportSpec, allow_csv: bool = False):
        body = request.get_json(silent=True) or {}
        credential = request.headers.get(API_KEY_HEADER, '')
        report = run_report(spec, gate, backend, credential, body)

        if allow_csv and request.args.get('format', '').lower() == 'csv':
            headers = {'Content-Disposition': f'attachment; filename="{csv_filename(report)}"'}
            if report.note:
                headers[NOTE_HEADER] = report.note
            return Response(to_csv(report), status=200, mimetype='text/csv', headers=headers)
        return jsonify(to_json(report))

    @app.route('/api/diagnose', methods=['POST'])
    def diagnose():
        return handle(PAGE_REPORT, allow_csv=True)

    @app.route('/api/traffic', methods=['POST'])
    def traffic():
        return handle(TRAFFIC_REPORT)

    @app.route('/api/timeseries', methods=['POST'])
    def timeseries():
        return handle(TIMESERIES_REPORT)

    @app.route('/api/hello', methods=['GET', 'POST'])
    def hello():
        if request.method == 'POST':
            return jsonify({'ok': True, 'method': 'POST'})
        return jsonify({'ok': True, 'route': '/api/hello'})

    @app.route('/api/debug-clients', methods=['GET'])
    def debug_clients():
        if not settings.debug_endpoints:
            return jsonify({'error': 'Not found'}), 404
        summary = {key: list(ids) for key, ids in settings.clients.items()}
        return jsonify({
            'ok': True,
            'mode': gate.mode,
            'rawLength': settings.clients_raw_length,
            'clients': summary,
        })

    @app.before_request
    def preflight():
        if request.method == 'OPTIONS':
            return Response(status=204)

    @app.after_request
    def add_cors(response):
        response.headers.update(CORS_HEADERS)
        return response

    @app.errorhandler(ReportError)
    def report_error(e: ReportError):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(Exception)
    def unexpected_error(e: Exception):
        if isinstance(e, HTTPException):
            return jsonify({'error': e.description}), e.code
        logger.exception("Unhandled error on %s", request.path)
        return jsonify({'error': str(e) or type(e).__name__}), 500

    return app
