# Overview: Request decorators for API routes.

import hmac
from functools import wraps

from flask import current_app, jsonify, request


def require_erp_api_key(f):
    """
    Require the 1C/ERP shared secret in the X-API-Key header.

    SECURITY: Returns 401 if the header is missing or wrong, and also when
    ERP_API_KEY is not configured (the integration is then disabled).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get("ERP_API_KEY")
        provided = request.headers.get("X-API-Key")

        if not expected or not provided or not hmac.compare_digest(
            provided.encode("utf-8"), expected.encode("utf-8")
        ):
            current_app.logger.warning(
                "Rejected ERP request to %s from %s", request.path, request.remote_addr
            )
            return jsonify({"error": "Unauthorized"}), 401

        return f(*args, **kwargs)

    return decorated_function
