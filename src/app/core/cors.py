"""
CORS Middleware

Starlette's CORSMiddleware with a set of exempt paths. Requests to an exempt
path reach their route untouched, so the route sends its own CORS headers
(including answering preflight requests itself).
"""

from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send


class PathExemptCORSMiddleware(CORSMiddleware):
    """CORSMiddleware that skips the given request paths."""

    def __init__(self, app: ASGIApp, exempt_paths: frozenset[str] = frozenset(), **kwargs):
        super().__init__(app, **kwargs)
        self.exempt_paths = exempt_paths

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["path"] in self.exempt_paths:
            await self.app(scope, receive, send)
            return

        await super().__call__(scope, receive, send)
