"""
================================================================================
5OCIAL BACKEND - CUSTOM MIDDLEWARE
================================================================================

@file        middleware.py
@description Bearer identity resolution and JSON error envelopes
@version     1.0.0

MODULE PURPOSE
================================================================================
1. BearerTokenMiddleware
   - Reads ``Authorization: Bearer <credential>``
   - Verifies it once per request with the configured identity backend
   - Exposes ``request.principal_id`` (or None) and ``request.auth_error``

2. ApiErrorMiddleware
   - Renders ServiceError subclasses as ``{"error": true, "kind", "message"}``
   - Maps database failures to ``dependency_failure`` (503)
   - Renders anything else raised under /api/ as a 500 ``internal`` envelope

ERROR HANDLING
================================================================================
A missing or invalid credential does not short-circuit the request: public
endpoints (health) still work, and ``api_login_required`` raises
Unauthorized with the recorded reason for protected ones.

Database errors have already rolled back their transaction.atomic() block by
the time they reach process_exception, so no partial write is visible.

================================================================================
"""

import logging

from django.db import DatabaseError
from django.http import JsonResponse

from .exceptions import DependencyFailure, ServiceError, Unauthorized
from .identity import get_identity_backend

logger = logging.getLogger(__name__)

API_PREFIX = "/api/"


# ============================================================================
# BEARER IDENTITY MIDDLEWARE
# ============================================================================

class BearerTokenMiddleware:
    """
    Resolve the caller's principal id from the bearer credential.

    Flow:
        1. No Authorization header -> principal_id None, "No token provided"
        2. Header without the Bearer scheme -> principal_id None
        3. Backend verify() -> principal_id, or the Unauthorized message
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request.principal_id = None
        request.auth_error = None

        header = request.META.get("HTTP_AUTHORIZATION", "")
        if not header.startswith("Bearer "):
            request.auth_error = "Unauthorized: No token provided"
        else:
            credential = header[len("Bearer "):].strip()
            try:
                request.principal_id = get_identity_backend().verify(credential)
            except Unauthorized as exc:
                # Logged at info: clients with stale tokens are routine.
                logger.info("Rejected bearer credential: %s", exc.message)
                request.auth_error = exc.message

        return self.get_response(request)


# ============================================================================
# ERROR ENVELOPE MIDDLEWARE
# ============================================================================

class ApiErrorMiddleware:
    """
    Turn exceptions raised by API views into JSON failure envelopes.

    Only requests under /api/ are handled for unexpected exceptions, so the
    admin keeps Django's regular error pages.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request, exception):
        if isinstance(exception, ServiceError):
            return self.render(exception)

        if not request.path.startswith(API_PREFIX):
            return None

        if isinstance(exception, DatabaseError):
            logger.exception("Database failure on %s %s", request.method, request.path)
            return self.render(DependencyFailure())

        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return self.render(ServiceError())

    @staticmethod
    def render(error):
        return JsonResponse(error.as_envelope(), status=error.status)
