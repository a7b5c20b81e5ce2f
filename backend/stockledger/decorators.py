# Overview: Request decorators establishing tenant context for API routes.

from functools import wraps
from flask import request, jsonify, g


def require_organization(f):
    """
    Establish tenant context from request headers.

    Sets the following Flask g attributes:
    - g.org_id: organization (tenant) ID from X-Organization-Id - REQUIRED
    - g.actor: optional actor label from X-User-Id, recorded as created_by

    Session handling lives outside the ledger; this only carries the
    scope the upstream gateway resolved.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get("X-Organization-Id", "").strip()
        if not raw.isdigit():
            return jsonify({"error": "X-Organization-Id header is required", "code": "missing_tenant"}), 401

        g.org_id = int(raw)
        actor = request.headers.get("X-User-Id", "").strip()
        g.actor = actor[:64] or None

        return f(*args, **kwargs)

    return decorated_function
