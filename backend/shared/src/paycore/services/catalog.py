"""In-process service catalog."""

from collections.abc import Iterable
from decimal import Decimal

from paycore.models import FlowType, ServiceDefinition

DEFAULT_SERVICES: tuple[ServiceDefinition, ...] = (
    ServiceDefinition(
        service_id="rasi-autocitas",
        name="Rasi Autocitas",
        monthly_price=Decimal("15"),
        currency="USD",
        flow_type=FlowType.CONTACT,
    ),
    ServiceDefinition(
        service_id="rasi-assistant",
        name="Rasi Assistant",
        monthly_price=Decimal("20"),
        currency="USD",
        flow_type=FlowType.CREDENTIALS,
    ),
    ServiceDefinition(
        service_id="rasi-chatbot",
        name="Rasi Chatbot",
        monthly_price=Decimal("225"),
        currency="USD",
        flow_type=FlowType.CHATBOT,
    ),
)


class ServiceCatalog:
    """Lookup of purchasable services by ID."""

    def __init__(self, services: Iterable[ServiceDefinition] = DEFAULT_SERVICES) -> None:
        self._services = {service.service_id: service for service in services}

    def get(self, service_id: str) -> ServiceDefinition | None:
        """Return an active service, or None if unknown or inactive."""
        service = self._services.get(service_id)
        if service is None or not service.active:
            return None
        return service

    def list_active(self) -> list[ServiceDefinition]:
        return [service for service in self._services.values() if service.active]
