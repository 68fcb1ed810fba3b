"""Application errors and the JSON error wrapper used by every HTTP handler."""
from functools import wraps

from starlette.responses import JSONResponse

from logger import get_logger

logger = get_logger(__name__)


class EcoShiftError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(EcoShiftError):
    status_code = 400


class AuthError(EcoShiftError):
    status_code = 401


class NotFound(EcoShiftError):
    status_code = 404


class UpstreamError(EcoShiftError):
    status_code = 500


def json_errors(func):
    """Turn exceptions raised by a handler into ``{"error": message}`` responses."""
    @wraps(func)
    async def wrapped(request, *args, **kwargs):
        try:
            return await func(request, *args, **kwargs)
        except EcoShiftError as e:
            logger.info(f"{request.method} {request.url.path} -> {e.status_code}: {e.message}")
            return JSONResponse({"error": e.message}, status_code=e.status_code)
        except Exception as e:
            logger.exception(f"{request.method} {request.url.path} failed")
            return JSONResponse({"error": str(e)}, status_code=500)
    return wrapped
