"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in clinic_ops/__init__.py with no default limits; this module
applies limits per route category, keyed by organisation when the request
names one and by remote IP otherwise.

Usage:
    from clinic_ops.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import request as flask_request

logger = logging.getLogger(__name__)

WRITE_LIMIT = "120/minute"
READ_LIMIT = "300/minute"


def organisation_rate_limit_key():
    """Rate limit key: organisation header if present, else remote IP."""
    org = flask_request.headers.get("X-Organisation-Id")
    if org:
        return f"organisation:{org}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per organisation, falling back to remote IP):
        - Rota, on-call and workflow blueprints: 120/minute
        - Rota configuration and capacity:       300/minute
        - Health check:                          exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in ("rota", "oncall", "workflow"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT, key_func=organisation_rate_limit_key)(bp)

    bp = app.blueprints.get("rota_config")
    if bp:
        limiter.limit(READ_LIMIT, key_func=organisation_rate_limit_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: rota/oncall/workflow %s, config %s",
                    WRITE_LIMIT, READ_LIMIT)
