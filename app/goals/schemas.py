from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator


class BaseSchema(BaseModel):
    class Config:
        from_attributes = True


def _not_blank(value: str) -> str:
    if not value or not value.strip():
        raise ValueError("must not be empty")
    return value.strip()


class GoalBase(BaseSchema):
    id: int
    user_id: int
    title: str
    task: str
    articles_to_read: List[int] = []
    completed: bool = False
    created_at: datetime


class GoalCreate(BaseSchema):
    title: str = Field(..., examples=["Learn Golang"])
    task: str = Field(..., examples=["Study Go basics"])
    articles_to_read: Optional[List[int]] = Field(None, examples=[[1, 2, 3]])

    @field_validator("title", "task")
    @classmethod
    def check_not_blank(cls, value: str) -> str:
        return _not_blank(value)


class GoalUpdate(BaseSchema):
    title: str = Field(..., examples=["Advanced Golang"])
    task: str = Field(..., examples=["Study concurrency"])
    completed: bool = False
    # None (or omitted) keeps the current list; [] clears it
    articles_to_read: Optional[List[int]] = Field(None, examples=[[4, 5, 6]])

    @field_validator("title", "task")
    @classmethod
    def check_not_blank(cls, value: str) -> str:
        return _not_blank(value)


class CompleteArticleRequest(BaseSchema):
    goal_id: int = Field(..., gt=0)
    article_id: int = Field(..., gt=0)


class ArticleProgressResponse(BaseSchema):
    article_id: int
    completed: bool
    date_completed: Optional[datetime] = None


class GoalProgressResponse(BaseSchema):
    id: int
    title: str
    task: str
    articles: List[ArticleProgressResponse]
    completed: bool
    created_at: datetime
    total_completed: int
    total_articles: int


class GoalResponse(GoalBase):
    pass


class PendingArticlesResponse(BaseModel):
    pending_articles: int


class PendingUserResponse(BaseSchema):
    id: int
    name: str
