"""
Logging setup and Sentry SDK initialization, configured from environment variables.
"""

import os
import logging
import re
from typing import Any, Dict

log = logging.getLogger(__name__)

# Scrubbed from Sentry events before they leave the server
SENSITIVE_PATTERNS = [
    re.compile(r"[A-Za-z0-9_\-]{30,}(?:\.[A-Za-z0-9_\-]+)?"),  # session/reset tokens, API keys
    re.compile(r"[a-f0-9]{32,}", re.IGNORECASE),  # password hashes/salts
    re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+"),  # parent email addresses
]
SENSITIVE_KEYS = {"password", "new_password", "access_token", "refresh_token", "token", "api_key", "cookie"}


def _mask_string(val: str) -> str:
    for pattern in SENSITIVE_PATTERNS:
        val = pattern.sub("[REDACTED]", val)
    return val


def _scrub(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: "[REDACTED]" if str(k).lower() in SENSITIVE_KEYS else _scrub(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_scrub(i) for i in obj]
    if isinstance(obj, str):
        return _mask_string(obj)
    return obj


def _scrub_sensitive_data(event: Dict[str, Any], hint: Dict[str, Any]) -> Dict[str, Any]:
    """Sentry before_send hook: masks credentials and emails in frames, request data and breadcrumbs."""
    try:
        for exc in event.get("exception", {}).get("values", []):
            for frame in exc.get("stacktrace", {}).get("frames", []):
                if "vars" in frame:
                    frame["vars"] = _scrub(frame["vars"])
        if "request" in event:
            event["request"] = _scrub(event["request"])
        crumbs = event.get("breadcrumbs", {})
        if isinstance(crumbs, dict) and "values" in crumbs:
            crumbs["values"] = _scrub(crumbs["values"])
    except Exception as e:
        log.debug(f"Sentry scrubber failed: {e}")
    return event


def setup_observability() -> None:
    """
    Initializes global system logging and Sentry (if DSN is present).
    Should be called once at application startup.
    """
    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    sentry_dsn = os.getenv("SENTRY_DSN")
    if sentry_dsn:
        import sentry_sdk
        sentry_env = os.getenv("SENTRY_ENV", os.getenv("APP_ENV", "production"))
        sentry_sdk.init(
            dsn=sentry_dsn,
            environment=sentry_env,
            traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.2")),
            send_default_pii=False,
            before_send=_scrub_sensitive_data
        )
        log.info(f"Sentry SDK initialized (env: {sentry_env})")
    else:
        log.info("SENTRY_DSN not provided. Running without Sentry.")

    # Quiet noisy third-party loggers
    for name in ("urllib3", "requests", "google", "grpc"):
        logging.getLogger(name).setLevel(logging.WARNING)
