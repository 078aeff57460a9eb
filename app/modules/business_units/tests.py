"""
Tests para unidades de negocio y categorías de venta
"""

import pytest

from app.core.config import settings
from app.common.exceptions import ConflictError, ValidationError
from app.modules.business_units.schemas import BusinessUnitCreate, BusinessUnitUpdate
from app.modules.business_units.service import BusinessUnitService
from app.modules.sales_categories.service import SalesCategoryService


class TestBusinessUnitService:

    def test_create_normalizes_code(self, db_session):
        unit = BusinessUnitService(db_session).create_business_unit(
            BusinessUnitCreate(code=" tr1 ", name="Tirana Store")
        )
        assert unit.id is not None
        assert unit.code == "TR1"

    def test_duplicate_code_rejected(self, db_session, sample_business_unit):
        with pytest.raises(ConflictError):
            BusinessUnitService(db_session).create_business_unit(
                BusinessUnitCreate(code="001", name="Duplicate")
            )

    def test_invalid_code_rejected(self):
        with pytest.raises(ValueError):
            BusinessUnitCreate(code="-bad", name="Bad")

    def test_update_keeps_code(self, db_session, sample_business_unit):
        service = BusinessUnitService(db_session)
        unit = service.update_business_unit(sample_business_unit.id, BusinessUnitUpdate(name="Renamed"))
        assert (unit.code, unit.name) == ("001", "Renamed")
        assert service.update_business_unit(999, BusinessUnitUpdate(name="x")) is None

    def test_user_business_units(self, db_session, sample_user, sample_business_unit):
        service = BusinessUnitService(db_session)
        inactive = service.create_business_unit(BusinessUnitCreate(code="002", name="Closed", is_active=False))

        service.assign_user(sample_business_unit.id, sample_user.id)
        service.assign_user(inactive.id, sample_user.id)

        assert [unit.code for unit in service.get_user_business_units(sample_user.id)] == ["001"]

        service.assign_user(sample_business_unit.id, sample_user.id, is_active=False)
        assert service.get_user_business_units(sample_user.id) == []

    def test_assign_unknown_user(self, db_session, sample_business_unit):
        with pytest.raises(ValidationError):
            BusinessUnitService(db_session).assign_user(sample_business_unit.id, "ghost")
        assert BusinessUnitService(db_session).assign_user(999, "ghost") is None


class TestSalesCategories:

    def test_default_category_is_domestic(self, db_session, export_category, domestic_category):
        assert SalesCategoryService(db_session).get_default_category_id() == domestic_category.id

    def test_fallback_when_domestic_missing(self, db_session, export_category):
        assert SalesCategoryService(db_session).get_default_category_id() == settings.FALLBACK_SALES_CATEGORY_ID


class TestBusinessUnitRouter:

    def test_admin_creates_unit(self, client, admin_user, make_headers):
        response = client.post("/business-units/", json={"code": "003", "name": "Durres"},
                               headers=make_headers(admin_user))
        assert response.status_code == 201
        assert response.json()["code"] == "003"

    def test_non_admin_cannot_create(self, client, sample_user, make_headers):
        response = client.post("/business-units/", json={"code": "003", "name": "Durres"},
                               headers=make_headers(sample_user))
        assert response.status_code == 403

    def test_duplicate_code_conflict(self, client, admin_user, sample_business_unit, make_headers):
        response = client.post("/business-units/", json={"code": "001", "name": "Again"},
                               headers=make_headers(admin_user))
        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"

    def test_list_only_assigned_units(self, client, sales_user, make_headers, db_session):
        BusinessUnitService(db_session).create_business_unit(BusinessUnitCreate(code="009", name="Other"))

        response = client.get("/business-units/", headers=make_headers(sales_user))
        assert response.status_code == 200
        assert [unit["code"] for unit in response.json()["business_units"]] == ["001"]

    def test_foreign_business_unit_header_forbidden(self, client, sample_user, sample_business_unit, make_headers):
        response = client.get(f"/business-units/{sample_business_unit.id}",
                              headers=make_headers(sample_user, sample_business_unit))
        assert response.status_code == 403
