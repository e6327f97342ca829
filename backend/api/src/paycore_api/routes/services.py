"""Service catalog endpoints.

Read-only listing of purchasable services. Prices are shown in the
service currency; the amount to pay is computed again at checkout.
"""

from fastapi import APIRouter, Depends

from paycore.models import CheckoutError, ErrorCode, ErrorResponse
from paycore.services.catalog import ServiceCatalog
from paycore_api.dependencies import get_catalog
from paycore_api.models.services import ServiceListResponse, ServiceResponse, ServiceSummary

router = APIRouter(tags=["services"])


@router.get(
    "/services",
    response_model=ServiceListResponse,
    summary="List active services",
)
async def list_services(
    catalog: ServiceCatalog = Depends(get_catalog),
) -> ServiceListResponse:
    return ServiceListResponse(
        services=[ServiceSummary.from_definition(s) for s in catalog.list_active()]
    )


@router.get(
    "/services/{service_id}",
    response_model=ServiceResponse,
    summary="Get one active service",
    responses={404: {"model": ErrorResponse, "description": "Unknown or inactive service"}},
)
async def get_service(
    service_id: str,
    catalog: ServiceCatalog = Depends(get_catalog),
) -> ServiceResponse:
    service = catalog.get(service_id)
    if service is None:
        raise CheckoutError(ErrorCode.SERVICE_NOT_FOUND, {"service_id": service_id})
    return ServiceResponse(service=ServiceSummary.from_definition(service))
