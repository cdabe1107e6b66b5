"""Custom middleware for FastAPI."""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
import time
import logging

logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log HTTP requests and responses."""
    
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        
        logger.info(
            f"Request: {request.method} {request.url.path} "
            f"from {request.client.host if request.client else 'unknown'}"
        )
        
        response = await call_next(request)
        process_time = time.time() - start_time
        
        logger.info(
            f"Response: {response.status_code} for {request.url.path} "
            f"took {process_time:.4f}s"
        )
        response.headers["X-Process-Time"] = str(process_time)
        return response
