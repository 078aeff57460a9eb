from pydantic import BaseModel
from typing import Optional


class AuthContext(BaseModel):
    """Contexto de autenticación: usuario + unidad de negocio seleccionada"""
    user_id: str
    business_unit_id: Optional[int] = None
    is_admin: bool = False
