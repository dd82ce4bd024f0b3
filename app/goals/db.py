from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.auth.models import User
from app.goals.models import Goal, GoalProgress
from app.goals.progress import ReconciliationPlan

# These functions flush but never commit; the caller owns the transaction.


def insert_goal(
    db: Session,
    user_id: int,
    title: str,
    task: str,
    article_ids: Sequence[int],
    created_at: datetime,
) -> Goal:
    """
    Inserts a goal and one not-completed progress row per article.

    Args:
        db (Session): SQLAlchemy session.
        user_id (int): Owner of the goal.
        title (str): Goal title.
        task (str): Goal task.
        article_ids (Sequence[int]): Deduplicated reading list.
        created_at (datetime): Creation timestamp.

    Returns:
        Goal: The new goal with its generated ID.
    """
    new_goal = Goal(
        user_id=user_id,
        title=title,
        task=task,
        articles_to_read=list(article_ids),
        completed=False,
        created_at=created_at,
    )
    db.add(new_goal)
    db.flush()
    insert_progress(db, new_goal.id, article_ids)
    return new_goal


def get_goal(db: Session, goal_id: int, user_id: int, for_update: bool = False) -> Optional[Goal]:
    """
    Retrieves a goal by ID for the user.

    Args:
        db (Session): SQLAlchemy session.
        goal_id (int): ID of the goal.
        user_id (int): ID of the owner.
        for_update (bool): Lock the row until the transaction ends.

    Returns:
        Optional[Goal]: The goal if found, else None.
    """
    query = db.query(Goal).filter(
        Goal.id == goal_id,
        Goal.user_id == user_id
    )
    if for_update:
        query = query.with_for_update()
    return query.first()


def get_user_goals(db: Session, user_id: int, skip: int = 0, limit: int = 100) -> List[Goal]:
    """
    Retrieves all goals for a user, newest first (paginated).

    Args:
        db (Session): SQLAlchemy session.
        user_id (int): ID of the user.
        skip (int): Pagination offset.
        limit (int): Pagination limit.

    Returns:
        List[Goal]: List of goals.
    """
    return (
        db.query(Goal)
        .filter(Goal.user_id == user_id)
        .order_by(Goal.created_at.desc(), Goal.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def insert_progress(db: Session, goal_id: int, article_ids: Sequence[int]) -> None:
    for article_id in article_ids:
        db.add(GoalProgress(goal_id=goal_id, article_id=article_id, completed=False, date_completed=None))
    db.flush()


def delete_progress_for(db: Session, goal_id: int, article_ids: Sequence[int]) -> int:
    """Deletes the progress rows of ``goal_id`` for the given articles. Returns rows deleted."""
    if not article_ids:
        return 0
    deleted = db.query(GoalProgress).filter(
        GoalProgress.goal_id == goal_id,
        GoalProgress.article_id.in_(list(article_ids))
    ).delete(synchronize_session="fetch")
    db.flush()
    return deleted


def replace_goal(
    db: Session,
    goal: Goal,
    title: str,
    task: str,
    plan: Optional[ReconciliationPlan] = None,
) -> Goal:
    """
    Overwrites title and task and, when a plan is given, reconciles the
    reading list: insert new progress rows, replace the list, delete stale rows.

    Args:
        db (Session): SQLAlchemy session.
        goal (Goal): Goal loaded for the owning user.
        title (str): New title.
        task (str): New task.
        plan (Optional[ReconciliationPlan]): Article changes, or None to keep the list.

    Returns:
        Goal: The updated goal.
    """
    goal.title = title
    goal.task = task
    if plan is not None:
        insert_progress(db, goal.id, plan.to_insert)
        goal.articles_to_read = list(plan.articles)
        db.flush()
        delete_progress_for(db, goal.id, plan.to_delete)
    db.flush()
    return goal


def upsert_progress(
    db: Session,
    goal_id: int,
    article_id: int,
    completed: bool,
    when: Optional[datetime],
) -> GoalProgress:
    """
    Creates or updates the progress row for one article of a goal.

    Args:
        db (Session): SQLAlchemy session.
        goal_id (int): ID of the goal.
        article_id (int): ID of the article.
        completed (bool): New completion state.
        when (Optional[datetime]): Completion timestamp.

    Returns:
        GoalProgress: The stored row.
    """
    existing = db.query(GoalProgress).filter(
        GoalProgress.goal_id == goal_id,
        GoalProgress.article_id == article_id
    ).with_for_update().first()

    if existing:
        existing.completed = completed
        existing.date_completed = when
    else:
        existing = GoalProgress(
            goal_id=goal_id,
            article_id=article_id,
            completed=completed,
            date_completed=when,
        )
        db.add(existing)

    db.flush()
    return existing


def count_completed_progress(db: Session, goal_id: int) -> int:
    return db.query(func.count(GoalProgress.id)).filter(
        GoalProgress.goal_id == goal_id,
        GoalProgress.completed.is_(True)
    ).scalar() or 0


def list_progress(db: Session, goal_id: int) -> List[GoalProgress]:
    """Progress rows of a goal ordered by article ID."""
    return (
        db.query(GoalProgress)
        .filter(GoalProgress.goal_id == goal_id)
        .order_by(GoalProgress.article_id)
        .all()
    )


def set_goal_completed(db: Session, goal: Goal, completed: bool) -> Goal:
    goal.completed = completed
    db.flush()
    return goal


def delete_goal(db: Session, goal_id: int, user_id: int) -> int:
    """
    Deletes a goal's progress rows, then the goal itself scoped to its owner.

    ⚠️ The progress rows are removed before ownership is known; the caller must
    roll back when this returns 0.

    Args:
        db (Session): SQLAlchemy session.
        goal_id (int): ID of the goal.
        user_id (int): ID of the owner.

    Returns:
        int: Number of goal rows deleted (0 or 1).
    """
    db.query(GoalProgress).filter(
        GoalProgress.goal_id == goal_id
    ).delete(synchronize_session="fetch")

    deleted = db.query(Goal).filter(
        Goal.id == goal_id,
        Goal.user_id == user_id
    ).delete(synchronize_session="fetch")

    db.flush()
    return deleted


def count_pending_articles(db: Session, user_id: int) -> int:
    """Counts tracked articles not yet completed across all of a user's goals."""
    return (
        db.query(func.count(GoalProgress.id))
        .select_from(GoalProgress)
        .join(Goal, Goal.id == GoalProgress.goal_id)
        .filter(Goal.user_id == user_id, GoalProgress.completed.is_(False))
        .scalar()
    ) or 0


def get_users_with_pending_articles(db: Session) -> List[User]:
    """Users owning at least one goal with an unread article."""
    return (
        db.query(User)
        .join(Goal, Goal.user_id == User.id)
        .join(GoalProgress, GoalProgress.goal_id == Goal.id)
        .filter(GoalProgress.completed.is_(False))
        .distinct()
        .order_by(User.id)
        .all()
    )
