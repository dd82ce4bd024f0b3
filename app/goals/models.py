from sqlalchemy import (
    Column, Integer, BigInteger, String, Boolean, DateTime, ForeignKey, JSON, UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import relationship
from app.core.database import Base

# BIGINT[] on Postgres, JSON list anywhere else
ArticleIdList = JSON().with_variant(ARRAY(BigInteger), "postgresql")


class Goal(Base):
    __tablename__ = "goals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)

    title = Column(String, nullable=False)
    task = Column(String, nullable=False)
    articles_to_read = Column(ArticleIdList, nullable=False, default=list)
    completed = Column(Boolean, nullable=False, default=False)  # derived from progress
    created_at = Column(DateTime, nullable=False)

    user = relationship("User", back_populates="goals")
    progress = relationship(
        "GoalProgress",
        back_populates="goal",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="GoalProgress.article_id",
    )


class GoalProgress(Base):
    __tablename__ = "goal_progress"
    __table_args__ = (
        UniqueConstraint("goal_id", "article_id", name="uq_goal_progress_goal_article"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    goal_id = Column(Integer, ForeignKey("goals.id", ondelete="CASCADE"), index=True, nullable=False)
    article_id = Column(BigInteger, nullable=False)
    completed = Column(Boolean, nullable=False, default=False)
    date_completed = Column(DateTime, nullable=True)

    goal = relationship("Goal", back_populates="progress")
