import uuid
import contextvars
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

trace_id_var = contextvars.ContextVar("trace_id", default=None)

TRACE_HEADER = "X-Trace-ID"
MAX_TRACE_ID_LENGTH = 128


class TraceMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, header_name: str = TRACE_HEADER):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        trace_id = request.headers.get(self.header_name)
        if not trace_id or len(trace_id) > MAX_TRACE_ID_LENGTH:
            trace_id = str(uuid.uuid4())
        token = trace_id_var.set(trace_id)
        try:
            response = await call_next(request)
        finally:
            trace_id_var.reset(token)
        response.headers[self.header_name] = trace_id
        return response
