from fastapi import APIRouter, Depends, status, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.localization.service import LocalizationService
from app.modules.localization.schemas import LocalizationStringSet, LocalizationStringsOut

localization_router = APIRouter(prefix="/localization", tags=["Localization"])


@localization_router.get("/{language_code}", response_model=LocalizationStringsOut)
def get_strings(language_code: str, db: Session = Depends(get_db)):
    """Textos de un idioma (endpoint público)"""
    service = LocalizationService(db)
    language = service.get_language(language_code)
    if not language:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Language not found")
    return LocalizationStringsOut(language_code=language.code, strings=service.get_strings(language.id))


@localization_router.put("/strings", status_code=status.HTTP_204_NO_CONTENT)
def set_string(
    data: LocalizationStringSet,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    LocalizationService(db).set_string(data.language_code, data.string_key, data.value)


@localization_router.post("/invalidate", status_code=status.HTTP_204_NO_CONTENT)
def invalidate_cache(
    language_code: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    LocalizationService(db).invalidate(language_code)
