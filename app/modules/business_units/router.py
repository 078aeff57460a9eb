from fastapi import APIRouter, Depends, status, HTTPException, Query
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.business_units.service import BusinessUnitService
from app.modules.business_units.schemas import (
    BusinessUnitCreate, BusinessUnitUpdate, BusinessUnitOut, BusinessUnitList,
    UserBusinessUnitAssign, UserBusinessUnitOut
)

business_units_router = APIRouter(prefix="/business-units", tags=["Business Units"])


@business_units_router.post("/", response_model=BusinessUnitOut, status_code=status.HTTP_201_CREATED)
def create_business_unit(
    unit: BusinessUnitCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    return BusinessUnitService(db).create_business_unit(unit)


@business_units_router.get("/", response_model=BusinessUnitList)
def list_my_business_units(
    active_only: bool = Query(True),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)
):
    """Unidades disponibles para el usuario (todas para administradores)"""
    service = BusinessUnitService(db)
    if auth_context.is_admin:
        return {"business_units": service.get_business_units(active_only)}
    return {"business_units": service.get_user_business_units(auth_context.user_id)}


@business_units_router.get("/{business_unit_id}", response_model=BusinessUnitOut)
def get_business_unit(
    business_unit_id: int,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)
):
    unit = BusinessUnitService(db).get_business_unit(business_unit_id)
    if not unit:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Business unit not found")
    return unit


@business_units_router.patch("/{business_unit_id}", response_model=BusinessUnitOut)
def update_business_unit(
    business_unit_id: int,
    update: BusinessUnitUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    unit = BusinessUnitService(db).update_business_unit(business_unit_id, update)
    if not unit:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Business unit not found")
    return unit


@business_units_router.post("/{business_unit_id}/users", response_model=UserBusinessUnitOut)
def assign_user(
    business_unit_id: int,
    assignment: UserBusinessUnitAssign,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    """Asignar un usuario a la unidad de negocio"""
    result = BusinessUnitService(db).assign_user(business_unit_id, assignment.user_id, assignment.is_active)
    if not result:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Business unit not found")
    return result
