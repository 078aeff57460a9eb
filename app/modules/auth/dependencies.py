"""
Dependencias de autenticación para FastAPI.
"""
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.dependencies.dbDependecies import get_db
from app.modules.auth.models import User
from app.modules.auth.schemas import AuthContext
from app.modules.auth.utils import verify_token
from app.modules.access.service import AccessService, SALES_MODULE

# Security scheme
security = HTTPBearer()


class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def get_current_user(
        credentials: HTTPAuthorizationCredentials = Depends(security),
        db: Session = Depends(get_db)
    ) -> User:
        """
        Obtener usuario actual desde token JWT.
        No requiere unidad de negocio (para endpoints generales).
        """
        payload = verify_token(credentials.credentials)

        user = db.get(User, payload["sub"])
        if user is None or not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Could not validate credentials",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return user

    @staticmethod
    def get_auth_context(
        request: Request,
        credentials: HTTPAuthorizationCredentials = Depends(security),
        db: Session = Depends(get_db)
    ) -> AuthContext:
        """
        Obtener contexto de autenticación con la unidad de negocio del header
        X-Business-Unit-ID (puesta en request.state por BusinessUnitMiddleware).
        """
        user = AuthDependencies.get_current_user(credentials, db)

        business_unit_id = getattr(request.state, "business_unit_id", None)
        if business_unit_id is not None and not user.is_admin:
            if not AccessService(db).has_business_unit_access(user.id, business_unit_id):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="You do not have access to this business unit"
                )

        return AuthContext(
            user_id=user.id,
            business_unit_id=business_unit_id,
            is_admin=bool(user.is_admin)
        )

    @staticmethod
    def require_module(module_name: str):
        """
        Dependencia para requerir una unidad de negocio seleccionada y acceso al módulo.
        Los administradores no necesitan permisos de módulo.
        """
        def module_checker(
            auth_context: AuthContext = Depends(AuthDependencies.get_auth_context),
            db: Session = Depends(get_db)
        ):
            if not auth_context.business_unit_id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Business unit context not found. Ensure X-Business-Unit-ID header is provided."
                )

            if not auth_context.is_admin and not AccessService(db).has_module_access(auth_context.user_id, module_name):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Access to module '{module_name}' is required"
                )

            return auth_context
        return module_checker

    @staticmethod
    def require_sales_access():
        """Dependencia para endpoints de ventas."""
        return AuthDependencies.require_module(SALES_MODULE)

    @staticmethod
    def require_admin():
        """Dependencia para requerir usuario administrador."""
        def admin_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)):
            if not auth_context.is_admin:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Administrator role required"
                )
            return auth_context
        return admin_checker


# Instancias de dependencias
get_current_user = AuthDependencies.get_current_user
get_auth_context = AuthDependencies.get_auth_context
require_sales_access = AuthDependencies.require_sales_access
require_admin = AuthDependencies.require_admin
