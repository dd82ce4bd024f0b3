# app/core/dependency.py
from fastapi import Depends
from sqlalchemy.orm import Session

from app.articles.catalog import ArticleCatalog, SqlArticleCatalog
from app.core.database import get_db
from app.goals.service import GoalProgressEngine


def get_article_catalog(db: Session = Depends(get_db)) -> ArticleCatalog:
    return SqlArticleCatalog(db)


def get_goal_engine(
    db: Session = Depends(get_db),
    catalog: ArticleCatalog = Depends(get_article_catalog),
) -> GoalProgressEngine:
    """
    FastAPI dependency that builds a goal engine bound to the request's
    session. Tests override ``get_article_catalog`` to use a fake catalog.
    """
    return GoalProgressEngine(db, catalog)
