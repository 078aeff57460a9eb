"""
Tests para permisos por unidad de negocio y por módulo
"""

import pytest

from app.common.exceptions import ValidationError
from app.modules.access.models import Module, Submodule, UserModuleAccess
from app.modules.access.service import AccessService
from app.modules.business_units.models import UserBusinessUnit


@pytest.fixture
def sales_submodules(db_session, sales_module):
    invoices = Submodule(module_id=sales_module.id, name="Invoices", page_url="/sales/invoices")
    returns = Submodule(module_id=sales_module.id, name="Returns", page_url="/sales/returns")
    db_session.add_all([invoices, returns])
    db_session.commit()
    return invoices, returns


class TestAccessService:

    def test_business_unit_access(self, db_session, sample_user, sample_business_unit):
        service = AccessService(db_session)
        assert service.has_business_unit_access(sample_user.id, sample_business_unit.id) is False

        assignment = UserBusinessUnit(user_id=sample_user.id, business_unit_id=sample_business_unit.id)
        db_session.add(assignment)
        db_session.commit()
        assert service.has_business_unit_access(sample_user.id, sample_business_unit.id) is True

        assignment.is_active = False
        db_session.commit()
        assert service.has_business_unit_access(sample_user.id, sample_business_unit.id) is False

    def test_module_grant_covers_submodules(self, db_session, sample_user, sales_module, sales_submodules):
        db_session.add(UserModuleAccess(user_id=sample_user.id, module_id=sales_module.id))
        db_session.commit()

        service = AccessService(db_session)
        assert service.has_module_access(sample_user.id, "Sales") is True
        assert service.has_module_access(sample_user.id, "Sales", "Returns") is True
        assert service.has_access_to_page(sample_user.id, "/sales/returns") is True

    def test_submodule_grant_only(self, db_session, sample_user, sales_module, sales_submodules):
        invoices, _ = sales_submodules
        db_session.add(UserModuleAccess(user_id=sample_user.id, module_id=sales_module.id, submodule_id=invoices.id))
        db_session.commit()

        service = AccessService(db_session)
        assert service.has_module_access(sample_user.id, "Sales", "Invoices") is True
        assert service.has_module_access(sample_user.id, "Sales", "Returns") is False
        assert service.has_access_to_page(sample_user.id, "/sales/invoices") is True
        assert service.has_access_to_page(sample_user.id, "/unknown") is False

    def test_revoked_access(self, db_session, sample_user, sales_module):
        db_session.add(UserModuleAccess(user_id=sample_user.id, module_id=sales_module.id, has_access=False))
        db_session.commit()
        assert AccessService(db_session).has_module_access(sample_user.id, "Sales") is False

    def test_grant_module_access(self, db_session, sample_user, sales_module, sales_submodules):
        service = AccessService(db_session)
        grant = service.grant_module_access(sample_user.id, "Sales", "Returns")
        assert grant.submodule_id == sales_submodules[1].id

        again = service.grant_module_access(sample_user.id, "Sales", "Returns")
        assert again.id == grant.id
        assert [module.name for module in service.get_allowed_modules(sample_user.id)] == ["Sales"]

    def test_grant_unknown_module_rejected(self, db_session, sample_user):
        with pytest.raises(ValidationError):
            AccessService(db_session).grant_module_access(sample_user.id, "Payroll")


class TestAccessRouter:

    def test_my_modules(self, db_session, client, sales_user, make_headers):
        db_session.add(Module(name="Reports", sort_order=5))
        db_session.commit()

        response = client.get("/access/modules", headers=make_headers(sales_user))
        assert response.status_code == 200
        assert [module["name"] for module in response.json()["modules"]] == ["Sales"]

    def test_grants_require_admin(self, client, sales_user, other_user, make_headers):
        response = client.post(
            "/access/grants",
            json={"user_id": other_user.id, "module_name": "Sales"},
            headers=make_headers(sales_user)
        )
        assert response.status_code == 403

    def test_admin_grants_access(self, client, admin_user, other_user, sales_module, make_headers):
        response = client.post(
            "/access/grants",
            json={"user_id": other_user.id, "module_name": "Sales"},
            headers=make_headers(admin_user)
        )
        assert response.status_code == 201
        assert response.json()["module_id"] == sales_module.id

    def test_invalid_token(self, client):
        response = client.get("/access/modules", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401
