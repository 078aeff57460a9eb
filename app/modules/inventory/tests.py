"""
Tests para el módulo de Inventario

- StockAdjuster: deltas aditivos, stock negativo, artículo inexistente
- Reporte de artículos con stock negativo
"""

import pytest
from decimal import Decimal

from app.common.exceptions import ArticleNotFoundError
from app.modules.articles.models import Article
from app.modules.inventory.service import InventoryService, StockAdjuster


def stock_of(db_session, article):
    db_session.expire_all()
    return db_session.get(Article, article.id).stock_quantity


class TestStockAdjuster:

    def test_positive_delta_removes_stock(self, db_session, sample_article):
        StockAdjuster(db_session).apply_adjustments([(sample_article.id, Decimal("3"))])
        db_session.commit()
        assert stock_of(db_session, sample_article) == Decimal("97")

    def test_negative_delta_adds_stock(self, db_session, sample_article):
        StockAdjuster(db_session).apply_adjustments([(sample_article.id, Decimal("-2.5"))])
        db_session.commit()
        assert stock_of(db_session, sample_article) == Decimal("102.5")

    def test_same_article_deltas_add_up(self, db_session, sample_article, second_article):
        articles = StockAdjuster(db_session).apply_adjustments([
            (second_article.id, Decimal("1")),
            (sample_article.id, Decimal("5")),
            (sample_article.id, Decimal("-2")),
            (sample_article.id, Decimal("4")),
        ])
        db_session.commit()

        assert [article.id for article in articles] == sorted([sample_article.id, second_article.id])
        assert stock_of(db_session, sample_article) == Decimal("93")
        assert stock_of(db_session, second_article) == Decimal("19")

    def test_stock_can_go_negative(self, db_session, second_article):
        StockAdjuster(db_session).apply_adjustments([(second_article.id, Decimal("25"))])
        db_session.commit()
        assert stock_of(db_session, second_article) == Decimal("-5")

    def test_missing_article_aborts_batch(self, db_session, sample_article):
        with pytest.raises(ArticleNotFoundError) as exc_info:
            StockAdjuster(db_session).apply_adjustments([
                (sample_article.id, Decimal("5")),
                (999, Decimal("1")),
            ])
        db_session.rollback()

        assert exc_info.value.article_id == 999
        assert str(exc_info.value) == "Article with ID 999 not found"
        assert stock_of(db_session, sample_article) == Decimal("100")

    def test_empty_batch(self, db_session):
        assert StockAdjuster(db_session).apply_adjustments([]) == []

    def test_rollback_discards_adjustment(self, db_session, sample_article):
        StockAdjuster(db_session).apply_adjustments([(sample_article.id, Decimal("10"))])
        db_session.rollback()
        assert stock_of(db_session, sample_article) == Decimal("100")


class TestInventoryService:

    def test_negative_stock_report(self, db_session, sample_article, second_article):
        sample_article.stock_quantity = Decimal("-3")
        second_article.stock_quantity = Decimal("-8")
        db_session.add(Article(code="A003", description="Tea", stock_quantity=Decimal("4")))
        db_session.commit()

        report = InventoryService(db_session).get_negative_stock_articles()
        assert report["total"] == 2
        assert [article.code for article in report["articles"]] == ["A002", "A001"]

        page = InventoryService(db_session).get_negative_stock_articles(limit=1, offset=1)
        assert [article.code for article in page["articles"]] == ["A001"]
        assert page["total"] == 2

    def test_negative_stock_endpoint(self, db_session, client, sales_user, sample_business_unit, make_headers):
        db_session.add(Article(code="NEG", description="Oversold", stock_quantity=Decimal("-1")))
        db_session.commit()

        response = client.get("/inventory/negative-stock", headers=make_headers(sales_user, sample_business_unit))
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["articles"][0]["code"] == "NEG"

    def test_article_stock_endpoint(self, client, sales_user, sample_business_unit, sample_article, make_headers):
        headers = make_headers(sales_user, sample_business_unit)

        response = client.get(f"/inventory/articles/{sample_article.id}", headers=headers)
        assert response.status_code == 200
        assert Decimal(response.json()["stock_quantity"]) == Decimal("100")

        assert client.get("/inventory/articles/999", headers=headers).status_code == 404
