from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from flask import Flask, Response, jsonify, request
from werkzeug.exceptions import HTTPException

from .config import AppConfig, load_config
from .counter import get_public_counts
from .database import Database, DatabaseConfig
from .models import UNKNOWN_COUNTRY, VisitRecord
from .recorder import record_visit
from .sanitize import (
    extract_domain,
    is_bot,
    is_ignored_path,
    is_valid_url,
    sanitize_session_id,
    sanitize_url,
)
from .schema import initialize
from .stats import get_dashboard_stats


logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "accelerometer=(), camera=(), geolocation=(), gyroscope=(), "
    "magnetometer=(), microphone=(), payment=(), usb=()",
}

# Read endpoints whose successful GET responses may be cached by proxies.
CACHED_ENDPOINTS = frozenset({"stats", "public_counts"})
CACHE_CONTROL = "public, max-age=60, s-maxage=60, stale-while-revalidate=300"


def _client_ip(trust_proxy_headers: bool) -> str:
    cf = request.headers.get("CF-Connecting-IP")
    if cf:
        return cf.strip()
    if trust_proxy_headers:
        xff = request.headers.get("X-Forwarded-For")
        if xff:
            # Left-most is original client in standard practice.
            return xff.split(",")[0].strip()
    return request.remote_addr or "0.0.0.0"


def _json_payload() -> Optional[Dict[str, Any]]:
    payload = request.get_json(silent=True)
    if payload is None:
        # sendBeacon posts JSON as text/plain.
        try:
            payload = json.loads(request.get_data(as_text=True) or "")
        except ValueError:
            return None
    return payload if isinstance(payload, dict) else None


def create_app(cfg: Optional[AppConfig] = None) -> Flask:
    cfg = cfg or load_config()
    db = Database(DatabaseConfig(sqlite_path=cfg.sqlite_path))

    app = Flask(__name__)
    app.config["ANALYTICS"] = cfg
    app.config["ANALYTICS_DB"] = db

    @app.after_request
    def add_response_headers(resp: Response) -> Response:
        for k, v in SECURITY_HEADERS.items():
            resp.headers[k] = v
        if request.method == "GET" and resp.status_code == 200 and request.endpoint in CACHED_ENDPOINTS:
            resp.headers["Cache-Control"] = CACHE_CONTROL
        return resp

    @app.errorhandler(Exception)
    def handle_error(err: Exception):
        if isinstance(err, HTTPException):
            return jsonify({"error": err.name, "message": err.description}), err.code
        logger.exception("unhandled error on %s", request.path)
        return jsonify({"error": "Internal Server Error", "message": str(err)}), 500

    @app.get("/health")
    def health() -> Response:
        return jsonify({"status": "ok"})

    @app.get("/setup")
    def setup() -> Response:
        initialize(db)
        return jsonify({"status": "ok", "message": "Database initialized"})

    # -------- ingestion --------
    def process_event(raw_url: str, raw_referrer: str, raw_session_id: Optional[str]):
        if not raw_url:
            return jsonify({"error": "Missing URL"}), 400
        if not is_valid_url(raw_url):
            return jsonify({"error": "Invalid URL"}), 400
        url = sanitize_url(raw_url)

        user_agent = request.headers.get("User-Agent") or "Unknown"
        if is_bot(user_agent):
            return jsonify({"status": "ignored", "reason": "bot"})

        ip = _client_ip(cfg.trust_proxy_headers)
        if ip in cfg.ignore_ips:
            return jsonify({"status": "ignored", "reason": "ip"})
        if is_ignored_path(url, cfg.ignore_paths):
            return jsonify({"status": "ignored", "reason": "path"})

        record = VisitRecord(
            url=url,
            domain=extract_domain(url),
            referrer=sanitize_url(raw_referrer) if raw_referrer else "",
            user_agent=user_agent,
            ip=ip,
            country=request.headers.get("CF-IPCountry") or UNKNOWN_COUNTRY,
            session_id=sanitize_session_id(raw_session_id),
        )
        try:
            record_visit(db, record)
        except Exception:
            logger.exception("ingest failed for %s", record.domain)
            return jsonify({"error": "Ingest Failed"}), 500
        return jsonify({"status": "ok"}), 201

    @app.get("/api/event")
    def collect_get():
        args = request.args
        return process_event(
            args.get("u") or args.get("url") or "",
            args.get("r") or args.get("referrer") or "",
            args.get("s") or args.get("sessionId"),
        )

    @app.post("/api/event")
    def collect_post():
        payload = _json_payload()
        if payload is None:
            return jsonify({"error": "Invalid JSON"}), 400
        return process_event(
            str(payload.get("url") or ""),
            str(payload.get("referrer") or ""),
            payload.get("sessionId"),
        )

    # -------- read paths --------
    @app.get("/api/stats")
    def stats():
        range_key = request.args.get("range", default="24h", type=str)
        domain = request.args.get("domain", default=None, type=str) or None
        try:
            data = get_dashboard_stats(db, range_key, domain, cfg.tz_offset)
        except Exception:
            logger.exception("stats failed (range=%s, domain=%s)", range_key, domain)
            return jsonify({"error": "Stats Failed"}), 500
        return jsonify(data.to_dict())

    @app.get("/api/info")
    def public_counts():
        raw_url = request.args.get("url", default="", type=str)
        if not raw_url:
            return jsonify({"error": "Missing URL"}), 400
        if not is_valid_url(raw_url):
            return jsonify({"error": "Invalid URL"}), 400
        url = sanitize_url(raw_url)
        try:
            counts = get_public_counts(db, extract_domain(url), url, cfg.tz_offset)
        except Exception:
            logger.exception("public counts failed for %s", url)
            return jsonify({"error": "Counts Failed"}), 500
        return jsonify(counts.to_dict())

    return app


if __name__ == "__main__":
    cfg = load_config()
    logging.basicConfig(level=cfg.log_level)
    app = create_app(cfg)
    app.run(host=cfg.host, port=cfg.port, debug=False)
