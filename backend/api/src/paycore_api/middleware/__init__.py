"""HTTP middleware and request helpers."""

from paycore_api.middleware.client_ip import get_client_ip
from paycore_api.middleware.correlation import CORRELATION_ID_HEADER, CorrelationIdMiddleware

__all__ = ["CORRELATION_ID_HEADER", "CorrelationIdMiddleware", "get_client_ip"]
