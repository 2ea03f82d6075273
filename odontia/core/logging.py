"""
Structured logging configuration for billing audit and monitoring
"""

import json
import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
from fastapi import Request


def setup_logging(level: str = "INFO") -> None:
    """Configure the root handler once at startup"""
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level.upper())
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    root.addHandler(handler)
    root.setLevel(level.upper())


def _json_default(value: Any):
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "value"):
        return value.value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


class AuditLogger:
    """Logs money-moving and clinical state changes as one JSON line per event"""

    def __init__(self):
        self.logger = logging.getLogger("audit")
        self.logger.setLevel(logging.INFO)

    def _emit(self, event_type: str, severity: str, tenant_id: Optional[int], user_id: Optional[int], **data):
        event = {
            "event_type": event_type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "tenant_id": tenant_id,
            "user_id": user_id,
            "severity": severity,
            **data,
        }
        message = json.dumps(event, default=_json_default)
        if severity == "ERROR":
            self.logger.error(message)
        elif severity == "WARNING":
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def log_invoice_created(self, tenant_id: int, user_id: Optional[int], invoice_id: int,
                            invoice_number: str, total: Decimal):
        """Log invoice creation"""
        self._emit(
            "invoice_created", "INFO", tenant_id, user_id,
            invoice_id=invoice_id, invoice_number=invoice_number, total=total,
        )

    def log_invoice_status_change(self, tenant_id: int, user_id: Optional[int], invoice_id: int,
                                  old_status: Any, new_status: Any, reason: str = "manual"):
        """Log invoice status transitions, manual or triggered by settlement"""
        self._emit(
            "invoice_status_changed", "INFO", tenant_id, user_id,
            invoice_id=invoice_id, old_status=old_status, new_status=new_status, reason=reason,
        )

    def log_payment_recorded(self, tenant_id: int, user_id: Optional[int], invoice_id: int,
                             payment_id: int, amount: Decimal, balance: Decimal):
        """Log an appended payment and the resulting balance"""
        self._emit(
            "payment_recorded", "INFO", tenant_id, user_id,
            invoice_id=invoice_id, payment_id=payment_id, amount=amount, balance=balance,
        )

    def log_payment_rejected(self, tenant_id: int, user_id: Optional[int], invoice_id: int,
                             amount: Any, reason: str):
        """Log a refused payment attempt"""
        self._emit(
            "payment_rejected", "WARNING", tenant_id, user_id,
            invoice_id=invoice_id, amount=amount, reason=reason,
        )

    def log_treatment_item_update(self, tenant_id: int, user_id: Optional[int], plan_id: int,
                                  item_id: int, old_status: Any, new_status: Any):
        """Log treatment plan item progress"""
        self._emit(
            "treatment_item_updated", "INFO", tenant_id, user_id,
            plan_id=plan_id, item_id=item_id, old_status=old_status, new_status=new_status,
        )

    def log_appointment_rescheduled(self, tenant_id: int, user_id: Optional[int], appointment_id: int,
                                    start_time: datetime, end_time: datetime, overlaps: int):
        """Log an appointment move; overlaps counts accepted collisions"""
        self._emit(
            "appointment_rescheduled", "WARNING" if overlaps else "INFO", tenant_id, user_id,
            appointment_id=appointment_id, start_time=start_time, end_time=end_time, overlaps=overlaps,
        )

    def log_api_access(
        self,
        request: Request,
        user_id: Optional[int],
        tenant_id: Optional[int],
        response_status: int,
        processing_time: float
    ):
        """Log API access for monitoring"""
        self._emit(
            "api_access",
            "ERROR" if response_status >= 500 else "INFO",
            tenant_id,
            user_id,
            method=request.method,
            path=request.url.path,
            ip_address=get_client_ip(request),
            response_status=response_status,
            processing_time_ms=round(processing_time * 1000, 2),
        )

    def log_event(self, event_type: str, description: str, severity: str = "WARNING",
                  tenant_id: Optional[int] = None, user_id: Optional[int] = None,
                  additional_data: Optional[Dict[str, Any]] = None):
        """Log general events"""
        self._emit(
            event_type, severity, tenant_id, user_id,
            description=description, additional_data=additional_data,
        )


# Global audit logger instance
audit_logger = AuditLogger()


def get_client_ip(request: Request) -> str:
    """Extract client IP address from request"""
    # Check for forwarded headers (behind proxy)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"
