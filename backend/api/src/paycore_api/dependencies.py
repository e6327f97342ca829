"""FastAPI dependency providers for the reconciliation services.

Each provider is an @lru_cache factory, so the whole process shares one
instance of every store. That is what makes the in-memory order store,
retry queue and ledger visible to both the HTTP routes and the background
jobs.

Service Dependency Graph:
    Settings
        ├── ServiceCatalog + CurrencyConverter ── PriceGuard
        ├── EpaycoSecrets ── EpaycoClient (keys also feed SignatureValidator)
        ├── OrderStore ─────────────┬── CheckoutService
        ├── SignatureValidator      │
        ├── WebhookRetryQueue       ├── PaymentReconciler ── BackgroundScheduler
        ├── CompensationLedger      │
        └── PaymentStatusStore ─────┘

Testing:
    Use reset_services() to clear cached instances between tests, or
    override get_reconciler / get_checkout_service through
    app.dependency_overrides.
"""

from functools import lru_cache

from paycore.config import Settings, get_settings
from paycore.services.catalog import ServiceCatalog
from paycore.services.checkout import CheckoutService
from paycore.services.collaborators import (
    InMemoryFulfillmentRegistry,
    LoggingNotifier,
    SaasRegistrationClient,
)
from paycore.services.compensation import CompensationLedger
from paycore.services.currency import CurrencyConverter, ExchangeRateClient
from paycore.services.epayco_client import EpaycoClient
from paycore.services.epayco_secrets import EpaycoSecrets
from paycore.services.order_store import CLEANUP_INTERVAL, OrderStore
from paycore.services.payment_status import PaymentStatusStore
from paycore.services.price_guard import PriceGuard
from paycore.services.reconciler import PaymentReconciler, RefundPolicy
from paycore.services.retry_queue import RETRY_INTERVAL, WebhookRetryQueue
from paycore.services.scheduler import BackgroundScheduler, PeriodicJob
from paycore.services.signature import SignatureValidator

EMAIL_RETRY_INTERVAL_SECONDS = 5 * 60


@lru_cache
def get_catalog() -> ServiceCatalog:
    return ServiceCatalog()


@lru_cache
def get_currency_converter() -> CurrencyConverter:
    settings = get_settings()
    return CurrencyConverter(
        ExchangeRateClient(settings.rate_api_url),
        default_rate=settings.default_usd_cop_rate,
    )


@lru_cache
def get_price_guard() -> PriceGuard:
    return PriceGuard(
        get_catalog(),
        get_currency_converter(),
        checkout_currency=get_settings().checkout_currency,
    )


@lru_cache
def get_order_store() -> OrderStore:
    return OrderStore()


@lru_cache
def get_retry_queue() -> WebhookRetryQueue:
    return WebhookRetryQueue()


@lru_cache
def get_ledger() -> CompensationLedger:
    return CompensationLedger()


@lru_cache
def get_status_store() -> PaymentStatusStore:
    return PaymentStatusStore()


@lru_cache
def get_epayco_secrets() -> EpaycoSecrets:
    return EpaycoSecrets(get_settings())


@lru_cache
def get_signature_validator() -> SignatureValidator:
    settings = get_settings()
    return SignatureValidator(
        get_epayco_secrets().private_key,
        signature_validation_enabled=settings.signature_validation_enabled,
        validate_ip=settings.validate_ip,
        authorized_networks=settings.authorized_networks,
        allow_unlisted_ips=not settings.is_production,
    )


@lru_cache
def get_epayco_client() -> EpaycoClient:
    settings = get_settings()
    return EpaycoClient(
        apify_url=settings.epayco_apify_url,
        validation_url=settings.epayco_validation_url,
        public_key=get_epayco_secrets().public_key,
        private_key=get_epayco_secrets().private_key,
        merchant_name=settings.merchant_name,
        test_mode=settings.epayco_test_mode,
        response_url=settings.epayco_response_url if settings.is_production else None,
        confirmation_url=settings.epayco_confirmation_url if settings.is_production else None,
    )


@lru_cache
def get_checkout_service() -> CheckoutService:
    return CheckoutService(
        price_guard=get_price_guard(),
        order_store=get_order_store(),
        gateway=get_epayco_client(),
    )


def _saas_client(settings: Settings) -> SaasRegistrationClient | None:
    if not settings.saas_api_url:
        return None
    return SaasRegistrationClient(settings.saas_api_url, frontend_url=settings.saas_frontend_url)


@lru_cache
def get_reconciler() -> PaymentReconciler:
    settings = get_settings()
    return PaymentReconciler(
        validator=get_signature_validator(),
        order_store=get_order_store(),
        retry_queue=get_retry_queue(),
        ledger=get_ledger(),
        status_store=get_status_store(),
        registry=InMemoryFulfillmentRegistry(),
        notifier=LoggingNotifier(),
        saas=_saas_client(settings),
        refund_policy=RefundPolicy(refund_on=frozenset(settings.refund_on_failed_steps)),
    )


@lru_cache
def get_scheduler() -> BackgroundScheduler:
    reconciler = get_reconciler()
    return BackgroundScheduler(
        [
            PeriodicJob(
                name="order-sweep",
                interval_seconds=CLEANUP_INTERVAL.total_seconds(),
                func=reconciler.sweep_orders,
                run_immediately=True,
            ),
            PeriodicJob(
                name="webhook-retry",
                interval_seconds=RETRY_INTERVAL.total_seconds(),
                func=reconciler.process_retry_queue,
            ),
            PeriodicJob(
                name="email-retry",
                interval_seconds=EMAIL_RETRY_INTERVAL_SECONDS,
                func=reconciler.retry_failed_emails,
            ),
        ]
    )


def reset_services() -> None:
    """Clear all cached service instances and settings.

    Example:
        @pytest.fixture(autouse=True)
        def reset_state():
            yield
            reset_services()
    """
    for provider in (
        get_catalog,
        get_currency_converter,
        get_price_guard,
        get_order_store,
        get_retry_queue,
        get_ledger,
        get_status_store,
        get_epayco_secrets,
        get_signature_validator,
        get_epayco_client,
        get_checkout_service,
        get_reconciler,
        get_scheduler,
        get_settings,
    ):
        provider.cache_clear()
