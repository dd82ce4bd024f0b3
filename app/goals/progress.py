"""
Pure rules for goal progress.

Nothing in here touches the database: the engine loads rows, asks these
helpers what to do, and hands the answer to the store.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Sequence


@dataclass(frozen=True)
class ArticleProgress:
    article_id: int
    completed: bool = False
    date_completed: Optional[datetime] = None


@dataclass(frozen=True)
class ReconciliationPlan:
    """What has to change to move a goal from one reading list to another."""

    articles: List[int]
    to_insert: List[int] = field(default_factory=list)
    to_delete: List[int] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not self.to_insert and not self.to_delete


def dedupe_article_ids(article_ids: Iterable[int]) -> List[int]:
    """Drop repeated ids, keeping the first occurrence's position."""
    return list(dict.fromkeys(int(article_id) for article_id in article_ids))


def derive_completed(progress_rows: Iterable, article_ids: Sequence[int]) -> bool:
    """
    A goal is completed when it has at least one article and every article in
    its current list has a completed progress row.

    Args:
        progress_rows: Objects exposing ``article_id`` and ``completed``.
        article_ids: The goal's current reading list.

    Returns:
        bool: The aggregate completion flag.
    """
    if not article_ids:
        return False
    done = {row.article_id for row in progress_rows if row.completed}
    return all(article_id in done for article_id in article_ids)


def plan_reconciliation(before: Iterable[int], after: Iterable[int]) -> ReconciliationPlan:
    """
    Diff the tracked article ids against the new reading list.

    ``to_insert`` keeps the order of ``after``; ``to_delete`` is sorted so the
    delete statements are deterministic.
    """
    tracked = set(before)
    articles = dedupe_article_ids(after)
    wanted = set(articles)
    return ReconciliationPlan(
        articles=articles,
        to_insert=[article_id for article_id in articles if article_id not in tracked],
        to_delete=sorted(tracked - wanted),
    )


def fill_progress(progress_rows: Iterable, article_ids: Sequence[int]) -> List[ArticleProgress]:
    """
    One entry per article in the reading list, ordered by article id.
    Articles without a row yet are reported as not completed.
    """
    by_article = {row.article_id: row for row in progress_rows}
    result = []
    for article_id in sorted(set(article_ids)):
        row = by_article.get(article_id)
        if row is None:
            result.append(ArticleProgress(article_id=article_id))
        else:
            result.append(
                ArticleProgress(
                    article_id=article_id,
                    completed=bool(row.completed),
                    date_completed=row.date_completed,
                )
            )
    return result
