import logging
import threading

from flask import Flask, jsonify, request
from flask_cors import CORS

logger = logging.getLogger(__name__)


def create_app(autoscaler):
    app = Flask(__name__)
    CORS(app)

    @app.route('/healthz')
    def healthz():
        return jsonify({"status": "ok"})

    @app.route('/api/status')
    def api_status():
        return jsonify(autoscaler.status())

    @app.route('/api/decisions')
    def api_decisions():
        limit = request.args.get('limit', 10, type=int)
        return jsonify(autoscaler.scaler.recent_history(limit))

    return app


def start_dashboard(autoscaler, port, host="0.0.0.0"):
    """Serve the status endpoints from a daemon thread."""
    app = create_app(autoscaler)
    thread = threading.Thread(
        target=app.run,
        kwargs={"host": host, "port": port, "debug": False, "use_reloader": False},
        daemon=True,
    )
    thread.start()
    logger.info(f"Status dashboard listening on {host}:{port}")
    return thread
