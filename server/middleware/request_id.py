"""
Request context middleware for request tracing.

Generates or propagates the X-Request-ID header and binds the request id and
the game id from the URL (``/api/games/{id}/...``) to the logging context.
"""

import re
import uuid
from typing import Callable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from logging_config import game_id_var, request_id_var

GAME_PATH_RE = re.compile(r"^/api/games/(\d+)(?:/|$)")


def game_id_from_path(path: str) -> Optional[int]:
    """Extract the game id from an API path, if it names one."""
    match = GAME_PATH_RE.match(path)
    return int(match.group(1)) if match else None


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    HTTP middleware for request ID generation and propagation.

    - Extracts X-Request-ID from incoming request headers
    - Generates a new UUID if not present
    - Sets request_id and game_id context vars for logging
    - Adds X-Request-ID to response headers
    """

    def __init__(
        self,
        app,
        header_name: str = "X-Request-ID",
        generator: Optional[Callable[[], str]] = None,
    ):
        super().__init__(app)
        self.header_name = header_name
        self.generator = generator or (lambda: str(uuid.uuid4()))

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(self.header_name) or self.generator()
        request.state.request_id = request_id

        request_token = request_id_var.set(request_id)
        game_token = game_id_var.set(game_id_from_path(request.url.path))
        try:
            response = await call_next(request)
            response.headers[self.header_name] = request_id
            return response
        finally:
            game_id_var.reset(game_token)
            request_id_var.reset(request_token)
