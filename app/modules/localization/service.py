"""
Textos localizados con caché en memoria por idioma.

La caché es del proceso: se llena la primera vez que se pide un idioma y se
invalida a mano (o al guardar un texto desde este servicio).
"""
from threading import RLock
from typing import Dict, Optional
import logging

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.common.exceptions import PersistenceError, ValidationError
from app.modules.localization.models import Language, LocalizationString

logger = logging.getLogger(__name__)


class LocalizationCache:
    """language_id -> {string_key: value}"""

    def __init__(self):
        self._lock = RLock()
        self._strings: Dict[int, Dict[str, str]] = {}

    def get(self, language_id: int) -> Optional[Dict[str, str]]:
        with self._lock:
            return self._strings.get(language_id)

    def put(self, language_id: int, strings: Dict[str, str]):
        with self._lock:
            self._strings[language_id] = strings

    def invalidate(self, language_id: Optional[int] = None):
        with self._lock:
            if language_id is None:
                self._strings.clear()
            else:
                self._strings.pop(language_id, None)


localization_cache = LocalizationCache()


class LocalizationService:
    def __init__(self, db: Session, cache: LocalizationCache = localization_cache):
        self.db = db
        self.cache = cache

    def get_language(self, language_code: Optional[str] = None) -> Optional[Language]:
        code = language_code or settings.DEFAULT_LANGUAGE_CODE
        return self.db.query(Language).filter(Language.code == code).first()

    def get_strings(self, language_id: int) -> Dict[str, str]:
        """Todos los textos del idioma (cache-aside)"""
        strings = self.cache.get(language_id)
        if strings is not None:
            return strings

        rows = self.db.query(LocalizationString).filter(LocalizationString.language_id == language_id).all()
        strings = {row.string_key: row.value for row in rows}
        self.cache.put(language_id, strings)
        logger.debug(f"Loaded {len(strings)} localization strings for language {language_id}")
        return strings

    def get_string(self, key: str, language_code: Optional[str] = None) -> str:
        """Texto traducido; si no existe se devuelve la propia clave"""
        language = self.get_language(language_code)
        if not language:
            return key
        return self.get_strings(language.id).get(key, key)

    def set_string(self, language_code: str, key: str, value: str) -> LocalizationString:
        language = self.get_language(language_code)
        if not language:
            raise ValidationError(f"Language '{language_code}' not found")

        try:
            row = self.db.query(LocalizationString).filter(
                LocalizationString.language_id == language.id,
                LocalizationString.string_key == key
            ).first()
            if row:
                row.value = value
            else:
                row = LocalizationString(language_id=language.id, string_key=key, value=value)
                self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error saving localization string {key}: {e}", exc_info=True)
            raise PersistenceError("Error saving localization string") from e

        self.cache.invalidate(language.id)
        return row

    def invalidate(self, language_code: Optional[str] = None):
        if language_code is None:
            self.cache.invalidate()
            logger.info("Localization cache cleared")
            return
        language = self.get_language(language_code)
        if language:
            self.cache.invalidate(language.id)
            logger.info(f"Localization cache cleared for '{language_code}'")
