"""CORS middleware — permissive headers plus a blanket preflight answer.

Learn: The bridge is called from the event source (server-side) and from
dashboards on other origins, so every response carries CORS headers:
- Access-Control-Allow-Origin: "*" (or the request origin, when listed)
- Access-Control-Allow-Methods / -Headers: what preflights may ask for

Any OPTIONS request is answered 204 before routing. Starlette's own
CORSMiddleware only short-circuits full preflights (Origin plus
Access-Control-Request-Method) and answers 200.
"""

from typing import Optional, Sequence

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

DEFAULT_ALLOW_HEADERS = ("Content-Type", "X-Client-Id", "X-Request-ID")


class CorsPreflightMiddleware(BaseHTTPMiddleware):
    """Add CORS headers to all responses; answer OPTIONS with 204."""

    def __init__(
        self,
        app,
        allow_origins: Sequence[str] = ("*",),
        allow_methods: Sequence[str] = ("GET", "POST", "OPTIONS"),
        allow_headers: Sequence[str] = DEFAULT_ALLOW_HEADERS,
    ):
        super().__init__(app)
        self.allow_origins = list(allow_origins)
        self.allow_methods = ", ".join(allow_methods)
        self.allow_headers = ", ".join(allow_headers)

    def _origin(self, request: Request) -> Optional[str]:
        if "*" in self.allow_origins:
            return "*"
        origin = request.headers.get("origin")
        return origin if origin in self.allow_origins else None

    def _apply(self, request: Request, response: Response) -> Response:
        origin = self._origin(request)
        if origin is not None:
            response.headers["Access-Control-Allow-Origin"] = origin
            if origin != "*":
                response.headers["Vary"] = "Origin"
        response.headers["Access-Control-Allow-Methods"] = self.allow_methods
        response.headers["Access-Control-Allow-Headers"] = self.allow_headers
        return response

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method == "OPTIONS":
            return self._apply(request, Response(status_code=204))
        response: Response = await call_next(request)
        return self._apply(request, response)
