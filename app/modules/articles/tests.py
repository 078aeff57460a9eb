"""
Tests para artículos
"""

import pytest
from decimal import Decimal

from app.common.exceptions import ConflictError, ValidationError
from app.modules.articles.models import Unit
from app.modules.articles.schemas import ArticleCreate
from app.modules.articles.service import ArticleService


class TestArticleService:

    def test_create_article(self, db_session):
        unit = Unit(code="PCS", name="Pieces")
        db_session.add(unit)
        db_session.commit()

        article = ArticleService(db_session).create_article(ArticleCreate(
            code="a100", description="Bread", unit_id=unit.id, price=Decimal("0.80"), stock_quantity=Decimal("12")
        ))
        assert article.code == "A100"
        assert article.stock_quantity == Decimal("12")
        assert ArticleService(db_session).get_article_by_code("A100").id == article.id

    def test_duplicate_code(self, db_session, sample_article):
        with pytest.raises(ConflictError):
            ArticleService(db_session).create_article(ArticleCreate(code="A001", description="Copy"))

    def test_unknown_reference(self, db_session):
        with pytest.raises(ValidationError, match="VAT rate with ID 5 not found"):
            ArticleService(db_session).create_article(ArticleCreate(code="A200", description="Milk", vat_rate_id=5))

    def test_negative_opening_stock_is_accepted(self, db_session):
        article = ArticleService(db_session).create_article(
            ArticleCreate(code="A300", description="Backorder", stock_quantity=Decimal("-2"))
        )
        assert article.stock_quantity == Decimal("-2")


class TestArticleRouter:

    def test_create_and_get(self, client, sample_user, make_headers):
        headers = make_headers(sample_user)
        response = client.post("/articles/", json={"code": "B1", "description": "Water", "price": "0.5"},
                               headers=headers)
        assert response.status_code == 201

        article_id = response.json()["id"]
        assert client.get(f"/articles/{article_id}", headers=headers).json()["code"] == "B1"
        assert client.get("/articles/999", headers=headers).status_code == 404

    def test_requires_token(self, client):
        assert client.get("/articles/1").status_code in (401, 403)
