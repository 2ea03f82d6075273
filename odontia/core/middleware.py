"""
Request logging middleware
"""

import time
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from odontia.core.logging import audit_logger


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Times each request and logs it as an api_access event"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception as e:
            audit_logger.log_event(
                event_type="api_error",
                description=f"API error: {str(e)}",
                severity="ERROR",
                additional_data={
                    "path": request.url.path,
                    "method": request.method,
                    "processing_time": time.time() - start_time,
                },
            )
            raise

        # get_current_user stores the caller on request.state
        current_user = getattr(request.state, "current_user", None)
        audit_logger.log_api_access(
            request=request,
            user_id=current_user.user_id if current_user else None,
            tenant_id=current_user.tenant_id if current_user else None,
            response_status=response.status_code,
            processing_time=time.time() - start_time,
        )
        return response
