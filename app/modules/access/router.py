from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.dependencies.dbDependecies import db_dependency
from app.dependencies.userDependencies import user_dependency
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.access.service import AccessService
from app.modules.access.schemas import AllowedModules, ModuleAccessGrant, ModuleAccessOut

access_router = APIRouter(prefix="/access", tags=["Access"])


@access_router.get("/modules", response_model=AllowedModules)
def get_my_modules(current_user: user_dependency, db: db_dependency):
    """Módulos a los que tiene acceso el usuario actual"""
    return {"modules": AccessService(db).get_allowed_modules(current_user.id)}


@access_router.post("/grants", response_model=ModuleAccessOut, status_code=status.HTTP_201_CREATED)
def grant_module_access(
    grant: ModuleAccessGrant,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    return AccessService(db).grant_module_access(grant.user_id, grant.module_name, grant.submodule_name)
