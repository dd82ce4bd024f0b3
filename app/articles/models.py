from sqlalchemy import Column, Integer, BigInteger, String, Text, DateTime
from app.core.database import Base, utcnow


class Article(Base):
    """Catalog entry. Only read by the goals feature."""

    __tablename__ = "articles"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    source = Column(String, nullable=True)
    topic_id = Column(Integer, nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
