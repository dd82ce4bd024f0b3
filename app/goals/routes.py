from typing import List, Dict
import logging

from fastapi import APIRouter, Depends, HTTPException, Security

from app.auth.models import User
from app.auth.service import get_current_user_id, require_admin
from app.core.dependency import get_goal_engine
from app.core.exceptions import GoalError
from app.goals.models import Goal
from app.goals.progress import ArticleProgress
from app.goals.schemas import (
    ArticleProgressResponse,
    CompleteArticleRequest,
    GoalCreate,
    GoalProgressResponse,
    GoalResponse,
    GoalUpdate,
    PendingArticlesResponse,
    PendingUserResponse,
)
from app.goals.service import GoalProgressEngine

router = APIRouter(prefix="/goals", tags=["Goals"])
logger = logging.getLogger(__name__)


def to_progress_response(goal: Goal, progress: List[ArticleProgress]) -> GoalProgressResponse:
    articles = [
        ArticleProgressResponse(
            article_id=p.article_id,
            completed=p.completed,
            date_completed=p.date_completed,
        )
        for p in progress
    ]
    return GoalProgressResponse(
        id=goal.id,
        title=goal.title,
        task=goal.task,
        articles=articles,
        completed=goal.completed,
        created_at=goal.created_at,
        total_completed=sum(1 for a in articles if a.completed),
        total_articles=len(articles),
    )


@router.get(
    "",
    response_model=List[GoalResponse],
    summary="Get all user goals",
    description="Retrieve all goals of the authenticated user, newest first. Supports pagination.",
    responses={
        200: {"description": "Goals retrieved successfully."},
        401: {"description": "Unauthorized."},
        500: {"description": "Failed to retrieve goals."},
    },
)
def read_user_goals_route(
    skip: int = 0,
    limit: int = 100,
    engine: GoalProgressEngine = Depends(get_goal_engine),
    user_id: int = Security(get_current_user_id),
) -> List[GoalResponse]:
    try:
        return engine.get_user_goals(user_id, skip, limit)
    except GoalError:
        raise
    except Exception as e:
        logger.error(f"Failed to fetch goals for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to retrieve goals")


@router.post(
    "",
    response_model=GoalResponse,
    summary="Create a new goal",
    description="Create a goal with an optional list of articles to read.",
    responses={
        200: {"description": "Goal created successfully."},
        400: {"description": "Empty title/task or unknown article IDs."},
        401: {"description": "Unauthorized."},
        500: {"description": "Goal creation failed."},
    },
)
def create_goal_route(
    goal: GoalCreate,
    engine: GoalProgressEngine = Depends(get_goal_engine),
    user_id: int = Security(get_current_user_id),
) -> GoalResponse:
    try:
        return engine.create_goal(user_id, goal.title, goal.task, goal.articles_to_read)
    except GoalError:
        raise
    except Exception as e:
        logger.error(f"Failed to create goal for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to create goal")


@router.get(
    "/pending",
    response_model=PendingArticlesResponse,
    summary="Count unread articles",
    description="Number of articles not yet completed across all goals of the authenticated user.",
    responses={
        200: {"description": "Count returned."},
        401: {"description": "Unauthorized."},
    },
)
def read_pending_count_route(
    engine: GoalProgressEngine = Depends(get_goal_engine),
    user_id: int = Security(get_current_user_id),
) -> PendingArticlesResponse:
    return PendingArticlesResponse(pending_articles=engine.get_pending_articles_count(user_id))


@router.get(
    "/pending/users",
    response_model=List[PendingUserResponse],
    summary="List users with unread articles",
    description="Admin only. Users that still have at least one article to read.",
    responses={
        200: {"description": "Users returned."},
        401: {"description": "Unauthorized."},
        403: {"description": "Admin privileges required."},
    },
)
def read_pending_users_route(
    engine: GoalProgressEngine = Depends(get_goal_engine),
    admin: User = Depends(require_admin),
) -> List[PendingUserResponse]:
    return engine.get_users_with_pending_articles()


@router.get(
    "/user/{user_id}",
    response_model=List[GoalResponse],
    summary="Get goals of any user",
    description="Admin only. Retrieve the goals of the given user.",
    responses={
        200: {"description": "Goals retrieved successfully."},
        401: {"description": "Unauthorized."},
        403: {"description": "Admin privileges required."},
    },
)
def read_goals_of_user_route(
    user_id: int,
    skip: int = 0,
    limit: int = 100,
    engine: GoalProgressEngine = Depends(get_goal_engine),
    admin: User = Depends(require_admin),
) -> List[GoalResponse]:
    return engine.get_user_goals(user_id, skip, limit)


@router.put(
    "/complete-article",
    response_model=GoalProgressResponse,
    summary="Mark an article of a goal as read",
    description="Completes one article and recomputes whether the goal is completed.",
    responses={
        200: {"description": "Article marked as completed."},
        401: {"description": "Unauthorized."},
        404: {"description": "Goal not found."},
        409: {"description": "Article is not part of the goal."},
        500: {"description": "Failed to complete article."},
    },
)
def complete_article_route(
    req: CompleteArticleRequest,
    engine: GoalProgressEngine = Depends(get_goal_engine),
    user_id: int = Security(get_current_user_id),
) -> GoalProgressResponse:
    try:
        goal, progress = engine.complete_article_progress(req.goal_id, req.article_id, user_id)
        return to_progress_response(goal, progress)
    except GoalError:
        raise
    except Exception as e:
        logger.error(f"Failed to complete article {req.article_id} of goal {req.goal_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to complete article progress")


@router.get(
    "/{goal_id}",
    response_model=GoalResponse,
    summary="Get a specific goal",
    description="Retrieve a specific goal by its ID.",
    responses={
        200: {"description": "Goal retrieved successfully."},
        401: {"description": "Unauthorized."},
        404: {"description": "Goal not found."},
    },
)
def read_goal_route(
    goal_id: int,
    engine: GoalProgressEngine = Depends(get_goal_engine),
    user_id: int = Security(get_current_user_id),
) -> GoalResponse:
    return engine.get_goal_by_id(user_id, goal_id)


@router.get(
    "/{goal_id}/progress",
    response_model=GoalProgressResponse,
    summary="Get the reading progress of a goal",
    responses={
        200: {"description": "Progress retrieved successfully."},
        401: {"description": "Unauthorized."},
        404: {"description": "Goal not found."},
    },
)
def read_goal_progress_route(
    goal_id: int,
    engine: GoalProgressEngine = Depends(get_goal_engine),
    user_id: int = Security(get_current_user_id),
) -> GoalProgressResponse:
    goal, progress = engine.get_goal_progress(user_id, goal_id)
    return to_progress_response(goal, progress)


@router.put(
    "/{goal_id}",
    response_model=GoalProgressResponse,
    summary="Update an existing goal",
    description=(
        "Replace title and task. When `articles_to_read` is sent the reading list is "
        "replaced and progress reconciled; omit it to keep the current list."
    ),
    responses={
        200: {"description": "Goal updated successfully."},
        400: {"description": "Empty title/task or unknown article IDs."},
        401: {"description": "Unauthorized."},
        404: {"description": "Goal not found."},
        500: {"description": "Failed to update goal."},
    },
)
def update_goal_route(
    goal_id: int,
    goal: GoalUpdate,
    engine: GoalProgressEngine = Depends(get_goal_engine),
    user_id: int = Security(get_current_user_id),
) -> GoalProgressResponse:
    try:
        updated, progress = engine.update_goal(
            user_id, goal_id, goal.title, goal.task, goal.completed, goal.articles_to_read
        )
        return to_progress_response(updated, progress)
    except GoalError:
        raise
    except Exception as e:
        logger.error(f"Failed to update goal {goal_id} for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update goal")


@router.delete(
    "/{goal_id}",
    response_model=Dict[str, str],
    summary="Delete a goal",
    description="Delete a goal and its reading progress.",
    responses={
        200: {"description": "Goal deleted successfully."},
        401: {"description": "Unauthorized."},
        404: {"description": "Goal not found."},
        500: {"description": "Failed to delete goal."},
    },
)
def delete_goal_route(
    goal_id: int,
    engine: GoalProgressEngine = Depends(get_goal_engine),
    user_id: int = Security(get_current_user_id),
) -> Dict[str, str]:
    try:
        engine.delete_goal(user_id, goal_id)
        return {"detail": "Goal deleted successfully."}
    except GoalError:
        raise
    except Exception as e:
        logger.error(f"Failed to delete goal {goal_id} for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete goal")
