import logging
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from app.articles.catalog import ArticleCatalog
from app.auth.models import User
from app.core.database import storage_step, transaction, utcnow
from app.core.exceptions import NotFoundError, NotTrackedError, RejectedError, ValidationError
from app.goals import db as store
from app.goals.models import Goal
from app.goals.progress import (
    ArticleProgress,
    dedupe_article_ids,
    derive_completed,
    fill_progress,
    plan_reconciliation,
)

logger = logging.getLogger(__name__)

GoalWithProgress = Tuple[Goal, List[ArticleProgress]]


def _require_text(value: Optional[str], field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} must not be empty", {"field": field})
    return text


def _require_positive(value: int, field: str) -> int:
    if value is None or value <= 0:
        raise ValidationError(f"Invalid {field}", {"field": field})
    return value


class GoalProgressEngine:
    """
    Business rules for daily goals and their per-article progress.

    The store only executes reads and writes; this class decides the values,
    the order of the writes and the transaction boundaries. Every mutating
    call ends by re-deriving the goal's ``completed`` flag from its progress
    rows, so the flag is never taken from a client.
    """

    def __init__(
        self,
        db: Session,
        catalog: ArticleCatalog,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.catalog = catalog
        self.clock = clock

    # Helpers

    def _validate_articles(self, article_ids: Sequence[int]) -> None:
        if not article_ids:
            return
        with storage_step(self.db, "validate article IDs"):
            invalid = self.catalog.validate_article_ids(list(article_ids))
        if invalid:
            raise RejectedError(invalid)

    def _load_goal(self, goal_id: int, user_id: int, for_update: bool = False) -> Goal:
        goal = store.get_goal(self.db, goal_id, user_id, for_update=for_update)
        if goal is None:
            raise NotFoundError(f"Goal {goal_id} not found", {"goal_id": goal_id})
        return goal

    def _refresh_completed(self, goal: Goal) -> Goal:
        rows = store.list_progress(self.db, goal.id)
        return store.set_goal_completed(
            self.db, goal, derive_completed(rows, goal.articles_to_read or [])
        )

    def _with_progress(self, goal: Goal) -> GoalWithProgress:
        with storage_step(self.db, "load goal progress"):
            rows = store.list_progress(self.db, goal.id)
        return goal, fill_progress(rows, goal.articles_to_read or [])

    # Queries

    def get_user_goals(self, user_id: int, skip: int = 0, limit: int = 100) -> List[Goal]:
        with storage_step(self.db, "get user goals"):
            return store.get_user_goals(self.db, user_id, skip, limit)

    def get_goal_by_id(self, user_id: int, goal_id: int) -> Goal:
        with storage_step(self.db, "get goal"):
            return self._load_goal(goal_id, user_id)

    def get_goal_progress(self, user_id: int, goal_id: int) -> GoalWithProgress:
        with storage_step(self.db, "get goal"):
            goal = self._load_goal(goal_id, user_id)
        return self._with_progress(goal)

    def get_pending_articles_count(self, user_id: int) -> int:
        with storage_step(self.db, "count pending articles"):
            return store.count_pending_articles(self.db, user_id)

    def get_users_with_pending_articles(self) -> List[User]:
        with storage_step(self.db, "list users with pending articles"):
            return store.get_users_with_pending_articles(self.db)

    # Commands

    def create_goal(
        self,
        user_id: int,
        title: str,
        task: str,
        article_ids: Optional[Sequence[int]] = None,
    ) -> Goal:
        """
        Creates a goal together with one progress row per article.

        Raises:
            ValidationError: Empty title or task.
            RejectedError: Some article IDs are not in the catalog. Nothing is written.
        """
        title = _require_text(title, "title")
        task = _require_text(task, "task")
        articles = dedupe_article_ids(article_ids or [])
        self._validate_articles(articles)

        with transaction(self.db, "create goal"):
            goal = store.insert_goal(self.db, user_id, title, task, articles, self.clock())

        logger.info(f"Created goal {goal.id} for user {user_id} with {len(articles)} article(s)")
        return goal

    def update_goal(
        self,
        user_id: int,
        goal_id: int,
        title: str,
        task: str,
        completed: bool = False,
        article_ids: Optional[Sequence[int]] = None,
    ) -> GoalWithProgress:
        """
        Full-replacement update of a goal.

        ``article_ids=None`` leaves the reading list and its progress alone;
        any list, including an empty one, replaces it. ``completed`` is
        accepted from the caller but the stored flag is always derived from
        progress.

        Raises:
            ValidationError: Empty title or task.
            RejectedError: Some new article IDs are not in the catalog.
            NotFoundError: The goal does not exist for this user.
        """
        title = _require_text(title, "title")
        task = _require_text(task, "task")
        articles = None if article_ids is None else dedupe_article_ids(article_ids)
        if articles is not None:
            self._validate_articles(articles)

        with transaction(self.db, "update goal"):
            goal = self._load_goal(goal_id, user_id, for_update=True)
            plan = None
            if articles is not None:
                tracked = [row.article_id for row in store.list_progress(self.db, goal.id)]
                plan = plan_reconciliation(tracked, articles)
            store.replace_goal(self.db, goal, title, task, plan)
            self._refresh_completed(goal)

        if completed != goal.completed:
            logger.debug(
                f"Ignored completed={completed} from caller for goal {goal_id}; derived {goal.completed}"
            )
        logger.info(f"Updated goal {goal_id} for user {user_id}")
        return self._with_progress(goal)

    def complete_article_progress(self, goal_id: int, article_id: int, user_id: int) -> GoalWithProgress:
        """
        Marks one article of a goal as read and re-derives the goal's status.

        Raises:
            NotFoundError: The goal does not exist for this user.
            NotTrackedError: The article is not in the goal's reading list.
        """
        with transaction(self.db, "complete article progress"):
            goal = self._load_goal(goal_id, user_id, for_update=True)
            if article_id not in (goal.articles_to_read or []):
                raise NotTrackedError(goal_id, article_id)
            store.upsert_progress(self.db, goal_id, article_id, True, self.clock())
            self._refresh_completed(goal)

        logger.info(f"Article {article_id} completed for goal {goal_id} (goal completed={goal.completed})")
        return self._with_progress(goal)

    def delete_goal(self, user_id: int, goal_id: int) -> None:
        """
        Deletes a goal and all of its progress rows.

        Raises:
            ValidationError: Non-positive user or goal ID.
            NotFoundError: The goal does not exist or belongs to someone else.
        """
        _require_positive(user_id, "user ID")
        _require_positive(goal_id, "goal ID")

        with transaction(self.db, "delete goal"):
            self._load_goal(goal_id, user_id, for_update=True)
            if store.delete_goal(self.db, goal_id, user_id) == 0:
                raise NotFoundError("Goal not found or access denied", {"goal_id": goal_id})

        logger.info(f"Deleted goal {goal_id} for user {user_id}")
