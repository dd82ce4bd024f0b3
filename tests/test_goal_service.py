"""
Tests for GoalProgressEngine

Covers goal creation, full-replacement updates with reading-list
reconciliation, per-article completion, deletion and the transactional
guarantees around each of them.
"""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from app.articles.catalog import ArticleCatalog
from app.core.exceptions import (
    ConflictError,
    NotFoundError,
    NotTrackedError,
    RejectedError,
    StorageError,
    ValidationError,
)
from app.goals import db as goal_db
from app.goals.models import Goal, GoalProgress
from app.goals.service import GoalProgressEngine


def progress_rows(db, goal_id):
    return (
        db.query(GoalProgress)
        .filter(GoalProgress.goal_id == goal_id)
        .order_by(GoalProgress.article_id)
        .all()
    )


def stored_goal(db, goal_id):
    return db.query(Goal).filter(Goal.id == goal_id).first()


def disk_full(statement):
    return OperationalError(statement, {}, Exception("disk full"))


# A storage failure surfaces as StorageError, an interruption propagates as is.
FAILURES = [
    pytest.param(disk_full("UPDATE goals"), StorageError, id="storage"),
    pytest.param(asyncio.CancelledError(), asyncio.CancelledError, id="interrupted"),
]


class BrokenCatalog(ArticleCatalog):
    def validate_article_ids(self, article_ids):
        raise disk_full("SELECT articles.id FROM articles")


class TestCreateGoal:
    """Tests for create_goal"""

    def test_create_goal_with_articles(self, goal_engine, db_session, clock):
        created_at = clock.peek()

        goal = goal_engine.create_goal(7, "Read up", "daily", [10, 11])

        assert goal.id is not None
        assert goal.user_id == 7
        assert goal.articles_to_read == [10, 11]
        assert goal.completed is False
        assert goal.created_at == created_at

        rows = progress_rows(db_session, goal.id)
        assert [(r.article_id, r.completed, r.date_completed) for r in rows] == [
            (10, False, None),
            (11, False, None),
        ]

    def test_create_goal_without_articles(self, goal_engine, db_session, catalog):
        goal = goal_engine.create_goal(7, "Stretch", "every morning", None)

        assert goal.articles_to_read == []
        assert goal.completed is False
        assert progress_rows(db_session, goal.id) == []
        assert catalog.calls == []

    def test_create_goal_collapses_duplicates(self, goal_engine, db_session):
        goal = goal_engine.create_goal(7, "Read up", "daily", [3, 1, 3])

        assert goal.articles_to_read == [3, 1]
        assert [r.article_id for r in progress_rows(db_session, goal.id)] == [1, 3]

    def test_create_goal_rejects_unknown_articles(self, goal_engine, db_session):
        with pytest.raises(RejectedError) as exc_info:
            goal_engine.create_goal(7, "Read up", "daily", [10, 99, 98])

        assert exc_info.value.invalid_ids == [99, 98]
        assert db_session.query(Goal).count() == 0
        assert db_session.query(GoalProgress).count() == 0

    @pytest.mark.parametrize("title,task", [("", "daily"), ("Read up", "   "), (None, "daily")])
    def test_create_goal_requires_title_and_task(self, goal_engine, db_session, title, task):
        with pytest.raises(ValidationError):
            goal_engine.create_goal(7, title, task, [10])

        assert db_session.query(Goal).count() == 0

    def test_storage_failure_rolls_back_goal_row(self, goal_engine, db_session, monkeypatch):
        def broken_insert(db, goal_id, article_ids):
            raise disk_full("INSERT INTO goal_progress")

        monkeypatch.setattr(goal_db, "insert_progress", broken_insert)

        with pytest.raises(StorageError) as exc_info:
            goal_engine.create_goal(7, "Read up", "daily", [10, 11])

        assert exc_info.value.step == "create goal"
        assert db_session.query(Goal).count() == 0

    def test_catalog_failure_is_a_storage_error(self, db_session, clock):
        engine = GoalProgressEngine(db_session, BrokenCatalog(), clock=clock)

        with pytest.raises(StorageError) as exc_info:
            engine.create_goal(7, "Read up", "daily", [10])

        assert exc_info.value.step == "validate article IDs"
        assert db_session.query(Goal).count() == 0


class TestQueries:
    """Tests for the read-only engine calls"""

    def test_get_goal_by_id_is_scoped_to_owner(self, goal_engine):
        goal = goal_engine.create_goal(7, "Read up", "daily", [10])

        assert goal_engine.get_goal_by_id(7, goal.id).id == goal.id
        with pytest.raises(NotFoundError):
            goal_engine.get_goal_by_id(8, goal.id)

    def test_get_user_goals_newest_first(self, goal_engine):
        first = goal_engine.create_goal(7, "First", "a", [])
        second = goal_engine.create_goal(7, "Second", "b", [])
        goal_engine.create_goal(8, "Someone else", "c", [])

        goals = goal_engine.get_user_goals(7)

        assert [g.id for g in goals] == [second.id, first.id]
        assert [g.id for g in goal_engine.get_user_goals(7, skip=1, limit=1)] == [first.id]

    def test_get_goal_progress(self, goal_engine):
        goal = goal_engine.create_goal(7, "Read up", "daily", [11, 10])
        goal_engine.complete_article_progress(goal.id, 11, 7)

        _, progress = goal_engine.get_goal_progress(7, goal.id)

        assert [(p.article_id, p.completed) for p in progress] == [(10, False), (11, True)]

    def test_count_completed_progress(self, goal_engine, db_session):
        goal = goal_engine.create_goal(7, "Read up", "daily", [10, 11, 12])
        goal_engine.complete_article_progress(goal.id, 12, 7)

        assert goal_db.count_completed_progress(db_session, goal.id) == 1

    def test_pending_articles(self, goal_engine, users):
        first = goal_engine.create_goal(7, "Read up", "daily", [10, 11])
        goal_engine.create_goal(7, "More", "weekly", [12])
        done = goal_engine.create_goal(8, "Short", "once", [1])

        assert goal_engine.get_pending_articles_count(7) == 3
        goal_engine.complete_article_progress(first.id, 10, 7)
        assert goal_engine.get_pending_articles_count(7) == 2

        assert [u.id for u in goal_engine.get_users_with_pending_articles()] == [7, 8]
        goal_engine.complete_article_progress(done.id, 1, 8)
        assert [u.id for u in goal_engine.get_users_with_pending_articles()] == [7]

    def test_read_failure_is_a_storage_error(self, goal_engine, monkeypatch):
        def broken_read(*args, **kwargs):
            raise disk_full("SELECT goals.id FROM goals")

        monkeypatch.setattr(goal_db, "get_user_goals", broken_read)

        with pytest.raises(StorageError) as exc_info:
            goal_engine.get_user_goals(7)

        assert exc_info.value.step == "get user goals"

    def test_progress_read_failure_is_a_storage_error(self, goal_engine, monkeypatch):
        goal = goal_engine.create_goal(7, "Read up", "daily", [10])

        def broken_read(*args, **kwargs):
            raise disk_full("SELECT goal_progress.id FROM goal_progress")

        monkeypatch.setattr(goal_db, "list_progress", broken_read)

        with pytest.raises(StorageError) as exc_info:
            goal_engine.get_goal_progress(7, goal.id)

        assert exc_info.value.step == "load goal progress"
        assert goal_engine.get_goal_by_id(7, goal.id).id == goal.id


class TestCompleteArticleProgress:
    """Tests for complete_article_progress"""

    def test_completing_every_article_completes_the_goal(self, goal_engine):
        goal = goal_engine.create_goal(7, "Read up", "daily", [10, 11])

        after_first, _ = goal_engine.complete_article_progress(goal.id, 10, 7)
        assert after_first.completed is False

        after_second, progress = goal_engine.complete_article_progress(goal.id, 11, 7)
        assert after_second.completed is True
        assert all(p.completed for p in progress)

    def test_completing_twice_is_idempotent(self, goal_engine, db_session, clock):
        goal = goal_engine.create_goal(7, "Read up", "daily", [10, 11])

        goal_engine.complete_article_progress(goal.id, 10, 7)
        latest = clock.peek()
        goal_engine.complete_article_progress(goal.id, 10, 7)

        rows = [r for r in progress_rows(db_session, goal.id) if r.article_id == 10]
        assert len(rows) == 1
        assert rows[0].completed is True
        assert rows[0].date_completed == latest

    def test_article_outside_the_list_is_rejected(self, goal_engine, db_session):
        goal = goal_engine.create_goal(7, "Read up", "daily", [10])

        with pytest.raises(NotTrackedError) as exc_info:
            goal_engine.complete_article_progress(goal.id, 11, 7)

        assert isinstance(exc_info.value, ConflictError)
        assert [r.article_id for r in progress_rows(db_session, goal.id)] == [10]

    def test_goal_of_another_user_is_not_found(self, goal_engine, db_session):
        goal = goal_engine.create_goal(7, "Read up", "daily", [10])

        with pytest.raises(NotFoundError):
            goal_engine.complete_article_progress(goal.id, 10, 8)

        assert progress_rows(db_session, goal.id)[0].completed is False

    @pytest.mark.parametrize("failure,expected", FAILURES)
    def test_failed_status_update_discards_the_completion(
        self, goal_engine, db_session, monkeypatch, failure, expected
    ):
        goal = goal_engine.create_goal(7, "Read up", "daily", [10])

        def broken_status(db, goal, completed):
            raise failure

        monkeypatch.setattr(goal_db, "set_goal_completed", broken_status)

        with pytest.raises(expected):
            goal_engine.complete_article_progress(goal.id, 10, 7)

        db_session.expire_all()
        rows = progress_rows(db_session, goal.id)
        assert [(r.article_id, r.completed, r.date_completed) for r in rows] == [(10, False, None)]
        assert stored_goal(db_session, goal.id).completed is False


class TestUpdateGoal:
    """Tests for update_goal and reading-list reconciliation"""

    def test_reconciles_reading_list(self, goal_engine, db_session, clock):
        goal = goal_engine.create_goal(7, "Read up", "daily", [1, 2, 3])
        completed_at = clock.peek()
        goal_engine.complete_article_progress(goal.id, 2, 7)

        updated, progress = goal_engine.update_goal(7, goal.id, "Read more", "daily", False, [2, 4])

        assert updated.articles_to_read == [2, 4]
        assert updated.title == "Read more"
        assert updated.completed is False
        rows = progress_rows(db_session, goal.id)
        assert [(r.article_id, r.completed, r.date_completed) for r in rows] == [
            (2, True, completed_at),
            (4, False, None),
        ]
        assert [(p.article_id, p.completed) for p in progress] == [(2, True), (4, False)]

    def test_shrinking_to_completed_articles_completes_the_goal(self, goal_engine):
        goal = goal_engine.create_goal(7, "Read up", "daily", [1, 2])
        goal_engine.complete_article_progress(goal.id, 1, 7)

        updated, _ = goal_engine.update_goal(7, goal.id, "Read up", "daily", False, [1])

        assert updated.completed is True

    def test_omitted_list_keeps_articles_and_progress(self, goal_engine, db_session):
        goal = goal_engine.create_goal(7, "Read up", "daily", [10, 11])
        goal_engine.complete_article_progress(goal.id, 10, 7)

        updated, progress = goal_engine.update_goal(7, goal.id, "Renamed", "nightly", False, None)

        assert updated.title == "Renamed"
        assert updated.task == "nightly"
        assert updated.articles_to_read == [10, 11]
        assert [(p.article_id, p.completed) for p in progress] == [(10, True), (11, False)]

    def test_empty_list_clears_articles(self, goal_engine, db_session):
        goal = goal_engine.create_goal(7, "Read up", "daily", [10])
        goal_engine.complete_article_progress(goal.id, 10, 7)

        updated, progress = goal_engine.update_goal(7, goal.id, "Read up", "daily", True, [])

        assert updated.articles_to_read == []
        assert updated.completed is False
        assert progress == []
        assert progress_rows(db_session, goal.id) == []

    def test_caller_completed_flag_is_not_persisted(self, goal_engine, db_session):
        goal = goal_engine.create_goal(7, "Read up", "daily", [10, 11])

        updated, _ = goal_engine.update_goal(7, goal.id, "Read up", "daily", True, None)

        assert updated.completed is False
        db_session.expire_all()
        assert stored_goal(db_session, goal.id).completed is False

    def test_unknown_articles_leave_goal_untouched(self, goal_engine, db_session):
        goal = goal_engine.create_goal(7, "Read up", "daily", [10])

        with pytest.raises(RejectedError):
            goal_engine.update_goal(7, goal.id, "Changed", "daily", False, [10, 404])

        db_session.expire_all()
        assert stored_goal(db_session, goal.id).title == "Read up"
        assert stored_goal(db_session, goal.id).articles_to_read == [10]

    def test_missing_goal(self, goal_engine):
        with pytest.raises(NotFoundError):
            goal_engine.update_goal(7, 12345, "Title", "Task", False, [10])

    def test_goal_of_another_user_is_not_found(self, goal_engine, db_session):
        goal = goal_engine.create_goal(7, "Read up", "daily", [10])

        with pytest.raises(NotFoundError):
            goal_engine.update_goal(8, goal.id, "Hijacked", "daily", False, [])

        db_session.expire_all()
        assert stored_goal(db_session, goal.id).title == "Read up"

    def test_empty_title_is_rejected(self, goal_engine):
        goal = goal_engine.create_goal(7, "Read up", "daily", [10])

        with pytest.raises(ValidationError):
            goal_engine.update_goal(7, goal.id, " ", "daily", False, None)

    def test_interrupted_update_rolls_back_every_step(self, goal_engine, db_session, monkeypatch):
        goal = goal_engine.create_goal(7, "Read up", "daily", [1, 2, 3])

        def cancelled(db, goal_id, article_ids):
            raise asyncio.CancelledError()

        monkeypatch.setattr(goal_db, "delete_progress_for", cancelled)

        with pytest.raises(asyncio.CancelledError):
            goal_engine.update_goal(7, goal.id, "Changed", "daily", False, [2, 4])

        db_session.expire_all()
        stored = stored_goal(db_session, goal.id)
        assert stored.title == "Read up"
        assert stored.articles_to_read == [1, 2, 3]
        assert [r.article_id for r in progress_rows(db_session, goal.id)] == [1, 2, 3]


class TestDeleteGoal:
    """Tests for delete_goal"""

    def test_delete_goal_and_progress(self, goal_engine, db_session):
        goal = goal_engine.create_goal(7, "Read up", "daily", [10, 11])

        goal_engine.delete_goal(7, goal.id)

        assert stored_goal(db_session, goal.id) is None
        assert progress_rows(db_session, goal.id) == []

    def test_delete_goal_of_another_user(self, goal_engine, db_session):
        goal = goal_engine.create_goal(7, "Read up", "daily", [10, 11])

        with pytest.raises(NotFoundError):
            goal_engine.delete_goal(8, goal.id)

        assert stored_goal(db_session, goal.id) is not None
        assert len(progress_rows(db_session, goal.id)) == 2

    def test_delete_missing_goal(self, goal_engine):
        with pytest.raises(NotFoundError):
            goal_engine.delete_goal(7, 999)

    @pytest.mark.parametrize("user_id,goal_id", [(0, 1), (7, 0), (-1, -1)])
    def test_non_positive_ids(self, goal_engine, user_id, goal_id):
        with pytest.raises(ValidationError):
            goal_engine.delete_goal(user_id, goal_id)

    def test_progress_deletion_rolls_back_when_goal_delete_misses(self, goal_engine, db_session, monkeypatch):
        """The ownership check inside the delete itself also protects progress rows"""
        goal = goal_engine.create_goal(7, "Read up", "daily", [10, 11])
        monkeypatch.setattr(goal_db, "get_goal", lambda *args, **kwargs: object())

        with pytest.raises(NotFoundError):
            goal_engine.delete_goal(8, goal.id)

        db_session.expire_all()
        assert len(progress_rows(db_session, goal.id)) == 2

    @pytest.mark.parametrize("failure,expected", FAILURES)
    def test_failed_delete_keeps_goal_and_progress(
        self, goal_engine, db_session, monkeypatch, failure, expected
    ):
        goal = goal_engine.create_goal(7, "Read up", "daily", [10, 11])
        delete_rows = goal_db.delete_goal

        def delete_then_fail(db, goal_id, user_id):
            delete_rows(db, goal_id, user_id)
            raise failure

        monkeypatch.setattr(goal_db, "delete_goal", delete_then_fail)

        with pytest.raises(expected):
            goal_engine.delete_goal(7, goal.id)

        db_session.expire_all()
        assert stored_goal(db_session, goal.id) is not None
        assert [r.article_id for r in progress_rows(db_session, goal.id)] == [10, 11]
