"""Service router - admin endpoints for bookable services"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...auth import verify_admin
from ...database import get_db
from .schemas import ServiceCreate, ServiceResponse, ServiceUpdate
from .service import ServiceNotFoundError, ServiceRegistry, ServiceValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/services", tags=["Services"], dependencies=[Depends(verify_admin)])


def get_service_registry(db: Session = Depends(get_db)) -> ServiceRegistry:
    """Dependency injection for ServiceRegistry"""
    return ServiceRegistry(db)


@router.get("", response_model=list[ServiceResponse])
async def list_services(registry: ServiceRegistry = Depends(get_service_registry)):
    """All services, active and inactive, ordered by name"""
    return registry.get_all()


@router.post("", response_model=ServiceResponse, status_code=201)
async def create_service(data: ServiceCreate, registry: ServiceRegistry = Depends(get_service_registry)):
    try:
        return registry.create(data)
    except ServiceValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors) from e


@router.get("/{service_id}", response_model=ServiceResponse)
async def get_service(service_id: int, registry: ServiceRegistry = Depends(get_service_registry)):
    service = registry.get(service_id)
    if not service:
        raise HTTPException(status_code=404, detail="Service not found")
    return service


@router.put("/{service_id}", response_model=ServiceResponse)
async def update_service(
    service_id: int,
    data: ServiceUpdate,
    registry: ServiceRegistry = Depends(get_service_registry),
):
    try:
        return registry.update(service_id, data)
    except ServiceNotFoundError:
        raise HTTPException(status_code=404, detail="Service not found") from None
    except ServiceValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors) from e


@router.post("/{service_id}/toggle", response_model=ServiceResponse)
async def toggle_service(service_id: int, registry: ServiceRegistry = Depends(get_service_registry)):
    """Activate or deactivate a service. Services are never deleted."""
    try:
        return registry.toggle_active(service_id)
    except ServiceNotFoundError:
        raise HTTPException(status_code=404, detail="Service not found") from None
