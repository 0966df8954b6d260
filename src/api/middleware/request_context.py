# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Request context middleware.

This middleware binds request-scoped identifiers to the structured logging
context so every quota decision, usage write and allocation change logged
while handling a request carries them:
1. X-Request-ID header (generated when absent)
2. X-User-Id and X-Organization-Id headers set by the authenticating proxy

The request id is echoed back in the X-Request-ID response header.

Example:
    GET /api/v1/quota/limits
    X-User-Id: user-123
    X-Organization-Id: school-1
"""

import logging
from typing import Callable
from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from src.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
USER_HEADER = "X-User-Id"
ORGANIZATION_HEADER = "X-Organization-Id"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds request identifiers to the logging context.

    The request id is also stored in request.state.request_id.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response],
    ) -> Response:
        """Bind context, run the request and clear the context afterwards.

        Args:
            request: Incoming HTTP request.
            call_next: Next middleware/handler.

        Returns:
            HTTP response with the X-Request-ID header.
        """
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        request.state.request_id = request_id

        clear_context()
        bind_context(
            request_id=request_id,
            path=request.url.path,
            user_id=request.headers.get(USER_HEADER),
            organization_id=request.headers.get(ORGANIZATION_HEADER),
        )
        try:
            response = await call_next(request)
        finally:
            clear_context()

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
