"""
Fixtures compartidas para los tests de los módulos.

La base de datos es un SQLite en archivo temporal; las tablas se recrean en
cada test. Las variables de entorno se fijan antes de importar la app.
"""
import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="sales-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient

from app.main import app
from app.database.database import SessionLocal, get_db, create_tables, drop_tables
from app.modules.auth.models import User
from app.modules.auth.utils import create_access_token
from app.modules.access.models import Module, UserModuleAccess
from app.modules.articles.models import Article
from app.modules.business_units.models import BusinessUnit, UserBusinessUnit
from app.modules.localization.service import localization_cache
from app.modules.sales_categories.models import SalesCategory
from app.modules.subjects.models import Subject


@pytest.fixture
def db_session():
    """Sesión sobre un esquema recién creado"""
    drop_tables()
    create_tables()
    localization_cache.invalidate()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db_session):
    """TestClient que comparte la sesión del test"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# ===== DATOS DE EJEMPLO =====

@pytest.fixture
def sample_user(db_session):
    user = User(id="user-1", email="seller@example.com", full_name="Seller One", is_active=True, is_admin=False)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def other_user(db_session):
    user = User(id="user-2", email="other@example.com", full_name="Other Seller", is_active=True, is_admin=False)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def admin_user(db_session):
    user = User(id="admin-1", email="admin@example.com", full_name="Admin", is_active=True, is_admin=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def sample_business_unit(db_session):
    unit = BusinessUnit(code="001", name="Main Store", is_active=True)
    db_session.add(unit)
    db_session.commit()
    return unit


@pytest.fixture
def domestic_category(db_session):
    category = SalesCategory(code="DOM", name="Domestic", is_active=True)
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture
def export_category(db_session):
    category = SalesCategory(code="EXP", name="Export", is_active=True)
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture
def sample_buyer(db_session):
    buyer = Subject(code="B001", subject_name="Buyer Ltd", is_buyer=True, is_furnitor=False)
    db_session.add(buyer)
    db_session.commit()
    return buyer


@pytest.fixture
def sample_supplier(db_session):
    supplier = Subject(code="S001", subject_name="Supplier Ltd", is_buyer=False, is_furnitor=True)
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture
def sample_article(db_session):
    article = Article(code="A001", barcode="3800000000001", description="Olive oil 1L",
                      price=Decimal("5.00"), stock_quantity=Decimal("100"))
    db_session.add(article)
    db_session.commit()
    return article


@pytest.fixture
def second_article(db_session):
    article = Article(code="A002", barcode="3800000000002", description="Coffee 500g",
                      price=Decimal("7.50"), stock_quantity=Decimal("20"))
    db_session.add(article)
    db_session.commit()
    return article


@pytest.fixture
def sales_module(db_session):
    module = Module(name="Sales", description="Sales invoices", sort_order=1)
    db_session.add(module)
    db_session.commit()
    return module


@pytest.fixture
def sales_user(db_session, sample_user, sample_business_unit, sales_module):
    """Usuario con acceso a la unidad de negocio y al módulo de ventas"""
    db_session.add(UserBusinessUnit(user_id=sample_user.id, business_unit_id=sample_business_unit.id))
    db_session.add(UserModuleAccess(user_id=sample_user.id, module_id=sales_module.id, has_access=True))
    db_session.commit()
    return sample_user


@pytest.fixture
def make_headers():
    """Cabeceras Authorization (+ X-Business-Unit-ID opcional) para un usuario"""
    def _make(user, business_unit=None):
        headers = {"Authorization": f"Bearer {create_access_token({'sub': user.id})}"}
        if business_unit is not None:
            headers["X-Business-Unit-ID"] = str(business_unit.id)
        return headers
    return _make
