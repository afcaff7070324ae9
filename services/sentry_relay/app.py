import gzip
import json
import os
import zlib
from datetime import datetime, timezone
from functools import wraps

from flask import Flask, request, jsonify
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from jsonschema import validate, ValidationError

from common.logging_config import setup_logging, log_audit_event
from .envelope import envelope_url_from_dsn
from .sender import forward_records

# Initialize Flask app
app = Flask(__name__)

# Setup structured logging
logger = setup_logging('sentry_relay')

# Configuration
SENTRY_DSN = os.getenv("SENTRY_DSN", "")
API_KEY = os.getenv("API_KEY", "")  # Empty means auth disabled
RATE_LIMIT = os.getenv("RATE_LIMIT", "600 per minute")
SEND_TIMEOUT = float(os.getenv("SEND_TIMEOUT", "10"))
MAX_WORKERS = int(os.getenv("MAX_WORKERS", "16"))

# Datadog posts either a single log object or an array of them
PAYLOAD_SCHEMA = {"type": ["object", "array"]}

# Initialize rate limiter
limiter = Limiter(
    get_remote_address,
    app=app,
    default_limits=[RATE_LIMIT],
    storage_uri="memory://"
)


class BadPayload(ValueError):
    """Request body could not be decoded into Datadog log records"""


def require_api_key(f):
    """Decorator to require API key authentication"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not API_KEY:
            return f(*args, **kwargs)

        provided_key = request.headers.get('X-API-Key')
        if not provided_key:
            logger.warning("Missing API key in request", extra={
                'ip': request.remote_addr,
                'path': request.path
            })
            return jsonify({"error": "Missing X-API-Key header"}), 401

        if provided_key != API_KEY:
            logger.warning("Invalid API key attempt", extra={
                'ip': request.remote_addr,
                'path': request.path
            })
            return jsonify({"error": "Invalid API key"}), 403

        return f(*args, **kwargs)
    return decorated_function


def parse_incoming_json(req):
    """
    Decode a Datadog request body

    Args:
        req: Flask request; gzip bodies are decompressed when
            Content-Encoding says so

    Returns:
        Decoded JSON object or array

    Raises:
        BadPayload: If the body isn't gzip/JSON or isn't an object or array
    """
    body = req.get_data()
    encoding = (req.headers.get('Content-Encoding') or '').lower()

    if 'gzip' in encoding:
        try:
            body = gzip.decompress(body)
        except (OSError, EOFError, zlib.error) as e:
            raise BadPayload(f"invalid gzip body: {e}") from e
        if not body:
            body = b'[]'

    try:
        payload = json.loads(body)
    except ValueError as e:
        raise BadPayload(f"invalid JSON: {e}") from e

    try:
        validate(payload, PAYLOAD_SCHEMA)
    except ValidationError as e:
        raise BadPayload(f"unexpected payload: {e.message}") from e

    return payload


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint"""
    return jsonify({
        "status": "healthy",
        "service": "sentry_relay",
        "dsn_configured": bool(SENTRY_DSN),
        "timestamp": datetime.now(timezone.utc).isoformat()
    }), 200


@app.route("/", methods=["GET", "PUT", "PATCH", "DELETE"])
def index():
    """Any non-POST request to the root answers ok, for forwarder URL checks"""
    return "ok", 200


@app.route("/", methods=["POST"])
@app.route("/ingest/datadog", methods=["POST"])
@require_api_key
@limiter.limit(lambda: RATE_LIMIT)
def relay():
    """Forward each posted Datadog log to Sentry as its own event"""
    if not SENTRY_DSN:
        logger.error("SENTRY_DSN is not configured")
        return jsonify({"error": "SENTRY_DSN missing"}), 500

    try:
        envelope_url = envelope_url_from_dsn(SENTRY_DSN)
    except ValueError as e:
        logger.error("Cannot derive envelope URL", extra={'error': str(e)})
        return jsonify({"error": "invalid SENTRY_DSN"}), 500

    try:
        try:
            payload = parse_incoming_json(request)
        except BadPayload as e:
            logger.warning("Bad payload received", extra={
                'ip': request.remote_addr,
                'error': str(e),
                'content_encoding': request.headers.get('Content-Encoding'),
            })
            return jsonify({"error": "bad json"}), 400

        records = payload if isinstance(payload, list) else [payload]
        logger.debug("Batch received", extra={
            'ip': request.remote_addr,
            'records': len(records),
            'content_length': request.content_length
        })

        forwarded, failed = forward_records(
            records, SENTRY_DSN, url=envelope_url,
            timeout=SEND_TIMEOUT, max_workers=MAX_WORKERS
        )

        log_audit_event(logger, 'batch_relayed',
                        source_ip=request.remote_addr,
                        records=len(records),
                        forwarded=forwarded,
                        failed=failed)

        return jsonify({"forwarded": forwarded, "failed": failed}), 207 if failed else 200

    except Exception as e:
        logger.error("Relay processing failed", extra={
            'error': str(e),
            'ip': request.remote_addr
        }, exc_info=True)
        return jsonify({"error": "Internal server error"}), 500


@app.errorhandler(429)
def ratelimit_handler(e):
    """Handle rate limit errors"""
    logger.warning("Rate limit exceeded", extra={
        'ip': request.remote_addr,
        'path': request.path
    })
    return jsonify({"error": "Rate limit exceeded"}), 429


if __name__ == "__main__":
    port = int(os.getenv("WEBHOOK_PORT", "8080"))

    logger.info("Starting sentry relay", extra={
        'port': port,
        'dsn_configured': bool(SENTRY_DSN),
        'auth_enabled': bool(API_KEY),
        'rate_limit': RATE_LIMIT,
        'max_workers': MAX_WORKERS
    })

    app.run(host="0.0.0.0", port=port)
