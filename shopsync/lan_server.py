"""
LAN Master Server — the job database over HTTP.

A lightweight Flask server that runs on the master node only. Client
nodes proxy every job read/write here; the local UI subscribes to change
events through the EventBus (or the /events SSE stream).

Request pipeline:
    1. record the caller in the ClientTracker (even if it fails auth)
    2. answer CORS preflight
    3. auth gate for job-data paths
    4. dispatch; every handler does one load → mutate → save on the store

Every response, errors included, is JSON with permissive CORS headers.
Errors always have the shape {"ok": false, "error": "..."}.
"""

import json
import logging

from flask import Flask, Response, jsonify, request as flask_request
from werkzeug.exceptions import HTTPException

from shopsync import __version__
from shopsync.auth import KEY_HEADER, AuthGate, needs_auth
from shopsync.errors import JobValidationError, ShopSyncError
from shopsync.events import JobsUpdated, stream_events
from shopsync.utils import to_iso, utc_now

logger = logging.getLogger("shopsync.lan_server")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,POST,PUT,DELETE,OPTIONS",
    "Access-Control-Allow-Headers": f"Content-Type,{KEY_HEADER}",
}

_HTTP_MESSAGES = {
    404: "Not found",
    405: "Method not allowed",
    413: "Body too large",
}


def _error(message: str, status: int):
    return jsonify({"ok": False, "error": message}), status


def _read_json_body(wrapper_key: str):
    """
    Parse the request body as JSON.

    Accepts both ``{"<wrapper_key>": {...}}`` and a bare object. An empty
    body is an empty object. Oversized bodies raise 413 from werkzeug.
    """
    raw = flask_request.get_data(cache=True)
    if not raw or not raw.strip():
        return {}
    try:
        payload = json.loads(raw)
    except ValueError:
        raise JobValidationError("Malformed JSON body") from None
    if isinstance(payload, dict) and wrapper_key in payload:
        if isinstance(payload[wrapper_key], dict):
            return payload[wrapper_key]
        # wrapper key present but not an object: the other keys are the bare object
        payload = {k: v for k, v in payload.items() if k != wrapper_key}
    return payload


def create_app(store, settings, tracker, bus, config: dict) -> Flask:
    """
    Build the master's Flask app around explicit collaborators.

    Args:
        store: JobStore owning the job document.
        settings: SettingsStore (source of the shared secret).
        tracker: ClientTracker for peer liveness.
        bus: EventBus receiving JobsUpdated events.
        config: Loaded config (lan_port, max_body_bytes, require_key).
    """
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.get("max_body_bytes", 5_000_000)
    port = config.get("lan_port", 3030)
    gate = AuthGate(settings, require_key=config.get("require_key", False))

    # ═══════════════════════════════════════════════════════════════════
    #  Request pipeline
    # ═══════════════════════════════════════════════════════════════════

    @app.before_request
    def _touch_and_gate():
        addr = tracker.touch(flask_request.remote_addr)

        if flask_request.method == "OPTIONS":
            return "", 204

        if needs_auth(flask_request.path):
            if not gate.is_authorized(flask_request.headers, flask_request.args):
                logger.warning(f"UNAUTHORIZED  {flask_request.method} {flask_request.path}  from {addr}")
                return _error("Unauthorized", 401)
            tracker.mark_authorized(addr)
        return None

    @app.after_request
    def _cors(response):
        for name, value in CORS_HEADERS.items():
            response.headers[name] = value
        return response

    @app.errorhandler(ShopSyncError)
    def _shop_error(e):
        return _error(str(e), e.status_code or 500)

    @app.errorhandler(HTTPException)
    def _http_error(e):
        return _error(_HTTP_MESSAGES.get(e.code, e.description or e.name), e.code or 500)

    @app.errorhandler(Exception)
    def _unexpected(e):
        logger.exception(f"Unhandled error on {flask_request.method} {flask_request.path}")
        return _error(str(e) or e.__class__.__name__, 500)

    # ═══════════════════════════════════════════════════════════════════
    #  Endpoints
    # ═══════════════════════════════════════════════════════════════════

    @app.route("/health", methods=["GET"])
    def health():
        """Liveness / capability probe. No auth."""
        return jsonify({
            "ok": True,
            "role": "master",
            "version": __version__,
            "port": port,
            "time": to_iso(utc_now()),
        })

    @app.route("/jobs", methods=["GET"])
    def list_jobs():
        """Full job list after the archival pass."""
        return jsonify({"ok": True, "jobs": store.list_jobs()})

    @app.route("/jobs", methods=["POST"])
    def add_job():
        """
        Create a job.

        Body: {"job": {...}} or the bare job object.
        Returns: {"ok": true, "job": <stored record>}
        """
        payload = _read_json_body("job")
        job = store.add_job(payload)
        logger.info(f"ADD           {job['jobNumber']}  ({job['id']})  from {flask_request.remote_addr}")
        bus.emit(JobsUpdated(action="add", id=job["id"]))
        return jsonify({"ok": True, "job": job})

    @app.route("/jobs/<path:job_id>", methods=["PUT"])
    def update_job(job_id):
        """
        Patch a job.

        Body: {"patch": {...}} or the bare patch object.
        Returns: {"ok": true, "job": <updated record>}, 404 for unknown ids.
        """
        patch = _read_json_body("patch")
        job = store.update_job(job_id, patch)
        logger.info(f"UPDATE        {job.get('jobNumber') or job_id}  from {flask_request.remote_addr}")
        bus.emit(JobsUpdated(action="update", id=job_id))
        return jsonify({"ok": True, "job": job})

    @app.route("/jobs/<path:job_id>", methods=["DELETE"])
    def delete_job(job_id):
        """Delete a job. Returns {"ok": true, "removedId": id}, 404 for unknown ids."""
        removed_id = store.delete_job(job_id)
        logger.info(f"DELETE        {removed_id}  from {flask_request.remote_addr}")
        bus.emit(JobsUpdated(action="delete", id=removed_id))
        return jsonify({"ok": True, "removedId": removed_id})

    @app.route("/clients", methods=["GET"])
    def clients():
        """Peers seen in the last few minutes."""
        return jsonify({"ok": True, **tracker.snapshot()})

    @app.route("/events", methods=["GET"])
    def events():
        """SSE stream of jobs-updated / lan-clients events."""
        return Response(
            stream_events(bus),
            mimetype="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    return app


def run_server(app: Flask, config: dict, settings) -> None:
    """Serve ``app`` on the configured LAN address (blocking)."""
    host = config.get("lan_host", "0.0.0.0")
    port = config.get("lan_port", 3030)

    AuthGate(settings, require_key=config.get("require_key", False)).warn_if_open()

    logger.info("=" * 60)
    logger.info(f"  Master job server running on http://{host}:{port}")
    logger.info(f"  Version:        {__version__}")
    logger.info(f"  Data dir:       {config.get('data_dir')}")
    logger.info(f"  Archive after:  {config.get('archive_after_days')} days")
    logger.info("=" * 60)

    # threaded=True: one thread per connection; the store serializes writes
    app.run(host=host, port=port, threaded=True, use_reloader=False)
