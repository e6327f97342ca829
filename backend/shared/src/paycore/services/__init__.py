"""Payment reconciliation services."""

from .catalog import ServiceCatalog
from .checkout import CheckoutService, CheckoutSession
from .collaborators import (
    InMemoryFulfillmentRegistry,
    IssuedCredentials,
    LoggingNotifier,
    SaasRegistrationClient,
)
from .compensation import CompensationLedger
from .currency import CurrencyConverter, ExchangeRateClient
from .epayco_client import EpaycoClient
from .epayco_secrets import EpaycoSecrets, SSMServiceError
from .order_store import OrderStore
from .payment_status import PaymentStatusStore
from .price_guard import PriceGuard
from .reconciler import PaymentReconciler, RefundPolicy
from .retry_queue import WebhookRetryQueue
from .scheduler import BackgroundScheduler, PeriodicJob
from .signature import SignatureValidator

__all__ = [
    "BackgroundScheduler",
    "CheckoutService",
    "CheckoutSession",
    "CompensationLedger",
    "CurrencyConverter",
    "EpaycoClient",
    "EpaycoSecrets",
    "ExchangeRateClient",
    "InMemoryFulfillmentRegistry",
    "IssuedCredentials",
    "LoggingNotifier",
    "OrderStore",
    "PaymentReconciler",
    "PaymentStatusStore",
    "PeriodicJob",
    "PriceGuard",
    "RefundPolicy",
    "SSMServiceError",
    "SaasRegistrationClient",
    "ServiceCatalog",
    "SignatureValidator",
    "WebhookRetryQueue",
]
