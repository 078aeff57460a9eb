"""
Tests para textos localizados y su caché
"""

import pytest

from app.common.exceptions import ValidationError
from app.modules.localization.models import Language, LocalizationString
from app.modules.localization.service import LocalizationCache, LocalizationService


@pytest.fixture
def languages(db_session):
    albanian = Language(code="sq", name="Shqip", is_default=True)
    english = Language(code="en", name="English")
    db_session.add_all([albanian, english])
    db_session.commit()
    db_session.add_all([
        LocalizationString(language_id=albanian.id, string_key="sales.title", value="Shitjet"),
        LocalizationString(language_id=english.id, string_key="sales.title", value="Sales"),
    ])
    db_session.commit()
    return albanian, english


class TestLocalizationService:

    def test_default_language(self, db_session, languages):
        service = LocalizationService(db_session, cache=LocalizationCache())
        assert service.get_string("sales.title") == "Shitjet"
        assert service.get_string("sales.title", "en") == "Sales"

    def test_missing_key_returns_key(self, db_session, languages):
        service = LocalizationService(db_session, cache=LocalizationCache())
        assert service.get_string("sales.unknown", "en") == "sales.unknown"
        assert service.get_string("sales.title", "de") == "sales.title"

    def test_strings_are_cached_until_invalidated(self, db_session, languages):
        _, english = languages
        service = LocalizationService(db_session, cache=LocalizationCache())
        assert service.get_string("sales.title", "en") == "Sales"

        # Cambio directo en la base de datos: la caché no se entera
        row = db_session.query(LocalizationString).filter_by(language_id=english.id).first()
        row.value = "Sales invoices"
        db_session.commit()
        assert service.get_string("sales.title", "en") == "Sales"

        service.invalidate("en")
        assert service.get_string("sales.title", "en") == "Sales invoices"

    def test_set_string_refreshes_cache(self, db_session, languages):
        service = LocalizationService(db_session, cache=LocalizationCache())
        assert service.get_string("sales.post", "en") == "sales.post"

        service.set_string("en", "sales.post", "Post")
        service.set_string("en", "sales.post", "Post invoice")
        assert service.get_string("sales.post", "en") == "Post invoice"

    def test_set_string_unknown_language(self, db_session, languages):
        with pytest.raises(ValidationError):
            LocalizationService(db_session, cache=LocalizationCache()).set_string("de", "sales.title", "Verkauf")


class TestLocalizationRouter:

    def test_public_strings(self, client, languages):
        response = client.get("/localization/en")
        assert response.status_code == 200
        assert response.json() == {"language_code": "en", "strings": {"sales.title": "Sales"}}

        assert client.get("/localization/de").status_code == 404

    def test_set_string_requires_admin(self, client, languages, sample_user, admin_user, make_headers):
        payload = {"language_code": "en", "string_key": "sales.cancel", "value": "Cancel"}

        assert client.put("/localization/strings", json=payload, headers=make_headers(sample_user)).status_code == 403
        assert client.put("/localization/strings", json=payload, headers=make_headers(admin_user)).status_code == 204

        assert client.get("/localization/en").json()["strings"]["sales.cancel"] == "Cancel"
