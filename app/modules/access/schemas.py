from pydantic import BaseModel, Field
from typing import Optional, List


class ModuleOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None

    class Config:
        from_attributes = True


class AllowedModules(BaseModel):
    modules: List[ModuleOut]


class ModuleAccessGrant(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=450)
    module_name: str = Field(..., min_length=1, max_length=100)
    submodule_name: Optional[str] = Field(None, max_length=100)


class ModuleAccessOut(BaseModel):
    id: int
    user_id: str
    module_id: int
    submodule_id: Optional[int] = None
    has_access: bool

    class Config:
        from_attributes = True
