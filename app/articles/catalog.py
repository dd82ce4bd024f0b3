from abc import ABC, abstractmethod
from typing import List, Sequence

from sqlalchemy.orm import Session

from app.articles.models import Article


class ArticleCatalog(ABC):
    """Answers whether article ids exist. Read-only."""

    @abstractmethod
    def validate_article_ids(self, article_ids: Sequence[int]) -> List[int]:
        """Return the ids from ``article_ids`` that are not in the catalog, in input order."""


class SqlArticleCatalog(ArticleCatalog):
    def __init__(self, db: Session):
        self.db = db

    def validate_article_ids(self, article_ids: Sequence[int]) -> List[int]:
        if not article_ids:
            return []
        found = {
            row.id
            for row in self.db.query(Article.id).filter(Article.id.in_(list(article_ids))).all()
        }
        return [article_id for article_id in article_ids if article_id not in found]
