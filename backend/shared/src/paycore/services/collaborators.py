"""Narrow interfaces to the systems fulfillment talks to.

- FulfillmentRegistry: credential pool and purchase rows (a spreadsheet
  in production)
- SaasRegistrar: creates the tenant and first user on the SaaS platform
- Notifier: customer emails

SaasRegistrationClient is the HTTP implementation of SaasRegistrar.
InMemoryFulfillmentRegistry and LoggingNotifier are used in development
and tests.
"""

from datetime import date, datetime
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, Field

from paycore.models import BillingPeriod, CredentialsRegistration, FlowType, SaasRegistrationError
from paycore.utils.logging import get_logger, mask_email, mask_name, mask_phone

logger = get_logger(__name__)

SAAS_TIMEOUT_SECONDS = 15.0
SAAS_HEALTH_TIMEOUT_SECONDS = 5.0

CREDENTIALS_SHEET = "Credentials"
PURCHASE_SHEETS: dict[FlowType, str] = {
    FlowType.CONTACT: "Autocitas",
    FlowType.CHATBOT: "Chatbot",
}


class IssuedCredentials(BaseModel):
    """Login handed to the customer after payment."""

    username: str
    password: str | None = Field(default=None, repr=False)
    url: str | None = None


class RegistryEntry(BaseModel):
    """Row written to the fulfillment registry."""

    flow_type: FlowType
    service_name: str
    email: str
    phone: str
    billing_period: BillingPeriod
    sales_date: datetime
    valid_until: date
    username: str | None = None
    url: str | None = None


class CredentialsEmail(BaseModel):
    email: str
    full_name: str
    service_name: str
    username: str
    password: str | None = Field(default=None, repr=False)
    url: str | None = None
    billing_period: BillingPeriod
    valid_until: date


class ConfirmationEmail(BaseModel):
    email: str
    full_name: str
    service_name: str
    flow_type: FlowType
    phone: str
    billing_period: BillingPeriod
    valid_until: date


class FulfillmentRegistry(Protocol):
    async def assign_credentials(self, entry: RegistryEntry) -> IssuedCredentials: ...

    async def register_purchase(self, entry: RegistryEntry) -> None: ...


class SaasRegistrar(Protocol):
    async def register(self, registration: CredentialsRegistration) -> IssuedCredentials: ...


class Notifier(Protocol):
    async def send_credentials(self, message: CredentialsEmail) -> None: ...

    async def send_purchase_confirmation(self, message: ConfirmationEmail) -> None: ...


class SaasRegistrationClient:
    """Registers companies and users through the SaaS public signup API."""

    def __init__(
        self,
        api_url: str,
        *,
        frontend_url: str | None = None,
        timeout: float = SAAS_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._frontend_url = frontend_url
        self._timeout = timeout
        self._transport = transport

    async def register(self, registration: CredentialsRegistration) -> IssuedCredentials:
        """Create the tenant and its first user.

        The password returned to the caller is the one the customer chose;
        the SaaS response only confirms the login email.

        Raises:
            SaasRegistrationError: On network errors, non-2xx responses or
                an unexpected response body.
        """
        payload = {
            "nombre_empresa": registration.company_name,
            "nit": registration.tax_id,
            "representante_legal": registration.legal_representative,
            "correo": registration.user_email,
            "nombre_usuario": registration.user_name,
            "documento": registration.user_document,
            "password": registration.password,
            "confirmar_password": registration.password,
        }
        logger.info(
            "Registering company in SaaS: company=%s user=%s",
            registration.company_name,
            mask_email(registration.user_email),
        )

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self._api_url}/api/auth/registro-publico", json=payload
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise SaasRegistrationError(
                f"SaaS registration failed ({e.response.status_code}): {_error_message(e.response)}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise SaasRegistrationError(f"SaaS registration failed: {e}") from e

        try:
            username = data["credenciales"]["email_usuario"]
        except (KeyError, TypeError) as e:
            raise SaasRegistrationError("SaaS response has no credentials") from e

        logger.info("SaaS registration succeeded for %s", mask_email(username))
        return IssuedCredentials(
            username=username,
            password=registration.password,
            url=self._frontend_url or self._api_url,
        )

    async def check_health(self) -> bool:
        """Whether the SaaS API answers its health endpoint."""
        try:
            async with httpx.AsyncClient(
                timeout=SAAS_HEALTH_TIMEOUT_SECONDS, transport=self._transport
            ) as client:
                response = await client.get(f"{self._api_url}/health")
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("SaaS API unavailable at %s: %s", self._api_url, e)
            return False
        return True


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return str(body)[:200]


class InMemoryFulfillmentRegistry:
    """Registry backed by a pre-provisioned credential pool and a row list."""

    def __init__(self, credential_pool: list[IssuedCredentials] | None = None) -> None:
        self._available = list(credential_pool or [])
        self.rows: list[dict[str, Any]] = []

    @property
    def available_credentials(self) -> int:
        return len(self._available)

    async def assign_credentials(self, entry: RegistryEntry) -> IssuedCredentials:
        """Assign pooled credentials, or record SaaS-issued ones for tracking.

        Raises:
            LookupError: If the pool is empty and no username was given.
        """
        if entry.username:
            credentials = IssuedCredentials(username=entry.username, url=entry.url)
        elif self._available:
            credentials = self._available.pop(0)
        else:
            raise LookupError("No credentials available in the pool")

        self.rows.append(
            {
                "sheet": CREDENTIALS_SHEET,
                "username": credentials.username,
                "service": entry.service_name,
                "status": "assigned",
                **self._common(entry),
            }
        )
        return credentials

    async def register_purchase(self, entry: RegistryEntry) -> None:
        self.rows.append(
            {
                "sheet": PURCHASE_SHEETS.get(entry.flow_type, entry.service_name),
                "service": entry.service_name,
                "status": "active",
                **self._common(entry),
            }
        )

    @staticmethod
    def _common(entry: RegistryEntry) -> dict[str, Any]:
        return {
            "email": entry.email,
            "phone": entry.phone,
            "billing_period": entry.billing_period.value,
            "sales_date": entry.sales_date.date().isoformat(),
            "valid_until": entry.valid_until.isoformat(),
        }


class LoggingNotifier:
    """Notifier that only logs what would have been sent."""

    def __init__(self) -> None:
        self.sent: list[BaseModel] = []

    async def send_credentials(self, message: CredentialsEmail) -> None:
        self.sent.append(message)
        logger.info(
            "Credentials email: to=%s name=%s service=%s valid_until=%s",
            mask_email(message.email),
            mask_name(message.full_name),
            message.service_name,
            message.valid_until,
        )

    async def send_purchase_confirmation(self, message: ConfirmationEmail) -> None:
        self.sent.append(message)
        logger.info(
            "Confirmation email: to=%s phone=%s service=%s valid_until=%s",
            mask_email(message.email),
            mask_phone(message.phone),
            message.service_name,
            message.valid_until,
        )
