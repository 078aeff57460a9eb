from fastapi import APIRouter, Depends, status, HTTPException
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.articles.service import ArticleService
from app.modules.articles.schemas import ArticleCreate, ArticleOut

articles_router = APIRouter(prefix="/articles", tags=["Articles"])


@articles_router.post("/", response_model=ArticleOut, status_code=status.HTTP_201_CREATED)
def create_article(
    article: ArticleCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)
):
    return ArticleService(db).create_article(article)


@articles_router.get("/{article_id}", response_model=ArticleOut)
def get_article(
    article_id: int,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)
):
    article = ArticleService(db).get_article(article_id)
    if not article:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Article not found")
    return article
