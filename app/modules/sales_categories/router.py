from fastapi import APIRouter, Depends, status, HTTPException
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.sales_categories.service import SalesCategoryService
from app.modules.sales_categories.schemas import SalesCategoryCreate, SalesCategoryOut, SalesCategoryList

sales_categories_router = APIRouter(prefix="/sales-categories", tags=["Sales Categories"])


@sales_categories_router.post("/", response_model=SalesCategoryOut, status_code=status.HTTP_201_CREATED)
def create_sales_category(
    category: SalesCategoryCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    return SalesCategoryService(db).create_category(category)


@sales_categories_router.get("/", response_model=SalesCategoryList)
def list_sales_categories(
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)
):
    return {"sales_categories": SalesCategoryService(db).get_categories()}


@sales_categories_router.get("/code/{code}", response_model=SalesCategoryOut)
def get_sales_category_by_code(
    code: str,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)
):
    category = SalesCategoryService(db).get_by_code(code.upper())
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sales category not found")
    return category
