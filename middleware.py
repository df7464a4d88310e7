import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from exceptions import MagnifyError
from utils.logging import get_logger

logger = get_logger("middleware")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Request ID injection and MagnifyError → JSON.

    Order of operations per request:
    1. Inject request ID (UUID)
    2. Process request
    3. Add X-Request-ID to response
    """

    async def dispatch(self, request: Request, call_next):
        # 1. Request ID
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        try:
            # 2. Process request
            response = await call_next(request)

        except MagnifyError as exc:
            logger.info(
                f"{request.method} {request.url.path} -> {exc.status_code} {exc.error_code}",
                extra={"request_id": request_id},
            )
            response = JSONResponse(
                status_code=exc.status_code,
                content={
                    "success": False,
                    "error": exc.error_code,
                    "message": exc.message,
                    **exc.details,
                },
            )

        # 3. Request ID header
        response.headers["X-Request-ID"] = request_id
        return response
