"""Storage and queries of aggregated review metrics."""

from datetime import date as date_type
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import delete, func, select

from reviewer_roulette.database import Database, NotFoundError
from reviewer_roulette.models import ReviewMetrics, User

DateLike = Union[date_type, datetime]


def _as_date(value: DateLike) -> date_type:
    if isinstance(value, datetime):
        return value.date()
    return value


def _optional_eq(column, value):
    return column.is_(None) if value is None else column == value


class MetricsRepository:
    """Create and query daily review metrics."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def create(self, metric: ReviewMetrics) -> ReviewMetrics:
        """Insert a metrics record; the passed object receives its id."""
        metric.date = _as_date(metric.date)
        with self._db.session() as session:
            session.add(metric)
            session.flush()
        return metric

    def create_or_update(self, metric: ReviewMetrics) -> ReviewMetrics:
        """Replace the record with the same date, team, user and project, or insert one."""
        metric.date = _as_date(metric.date)
        query = (
            select(ReviewMetrics.id)
            .where(
                ReviewMetrics.date == metric.date,
                ReviewMetrics.team == metric.team,
                _optional_eq(ReviewMetrics.user_id, metric.user_id),
                _optional_eq(ReviewMetrics.project_id, metric.project_id),
            )
            .order_by(ReviewMetrics.id)
            .limit(1)
        )
        with self._db.session() as session:
            existing_id = session.scalar(query)
            if existing_id is None:
                session.add(metric)
                session.flush()
                return metric
            metric.id = existing_id
            session.merge(metric)
        return metric

    def get_by_date(
        self, date: DateLike, team: str, user_id: Optional[int] = None
    ) -> ReviewMetrics:
        """Return the record of a day and team; team-level when ``user_id`` is None."""
        query = (
            select(ReviewMetrics)
            .where(
                ReviewMetrics.date == _as_date(date),
                ReviewMetrics.team == team,
                _optional_eq(ReviewMetrics.user_id, user_id),
            )
            .order_by(ReviewMetrics.id)
            .limit(1)
        )
        with self._db.session() as session:
            metric = session.scalars(query).first()
        if metric is None:
            raise NotFoundError(f"no metrics for team {team!r} on {_as_date(date)}")
        return metric

    def get_by_date_range(
        self,
        start_date: DateLike,
        end_date: DateLike,
        team: Optional[str] = None,
        user_id: Optional[int] = None,
        project_id: Optional[int] = None,
    ) -> List[ReviewMetrics]:
        """Return records dated within the range, newest first, optionally filtered."""
        query = select(ReviewMetrics).where(
            ReviewMetrics.date.between(_as_date(start_date), _as_date(end_date))
        )
        if team:
            query = query.where(ReviewMetrics.team == team)
        if user_id is not None:
            query = query.where(ReviewMetrics.user_id == user_id)
        if project_id is not None:
            query = query.where(ReviewMetrics.project_id == project_id)
        with self._db.session() as session:
            return list(session.scalars(query.order_by(ReviewMetrics.date.desc(), ReviewMetrics.id)))

    def get_average_ttfr_by_team(
        self, start_date: DateLike, end_date: DateLike
    ) -> Dict[str, float]:
        """Average of the stored TTFR values per team within the range."""
        query = (
            select(ReviewMetrics.team, func.avg(ReviewMetrics.avg_ttfr))
            .where(
                ReviewMetrics.date.between(_as_date(start_date), _as_date(end_date)),
                ReviewMetrics.avg_ttfr.is_not(None),
            )
            .group_by(ReviewMetrics.team)
        )
        with self._db.session() as session:
            rows = session.execute(query).all()
        return {team: float(average) for team, average in rows}

    def get_top_reviewers_by_engagement(
        self, start_date: DateLike, end_date: DateLike, limit: int
    ) -> List[User]:
        """Users with the highest summed engagement score in the range, best first."""
        total = func.sum(ReviewMetrics.engagement_score).label("total_engagement_score")
        query = (
            select(ReviewMetrics.user_id, total)
            .where(
                ReviewMetrics.date.between(_as_date(start_date), _as_date(end_date)),
                ReviewMetrics.user_id.is_not(None),
            )
            .group_by(ReviewMetrics.user_id)
            .order_by(total.desc())
            .limit(limit)
        )
        with self._db.session() as session:
            rows = session.execute(query).all()
            users = [session.get(User, user_id) for user_id, _ in rows]
        return [user for user in users if user is not None]

    def get_metrics_by_team(
        self, team: str, start_date: DateLike, end_date: DateLike
    ) -> List[ReviewMetrics]:
        """All records of a team within the range, newest first."""
        return self._query_range(ReviewMetrics.team == team, start_date, end_date)

    def get_metrics_by_user(
        self, user_id: int, start_date: DateLike, end_date: DateLike
    ) -> List[ReviewMetrics]:
        """All records of a user within the range, newest first."""
        return self._query_range(ReviewMetrics.user_id == user_id, start_date, end_date)

    def _query_range(self, condition, start_date: DateLike, end_date: DateLike) -> List[ReviewMetrics]:
        query = (
            select(ReviewMetrics)
            .where(condition, ReviewMetrics.date.between(_as_date(start_date), _as_date(end_date)))
            .order_by(ReviewMetrics.date.desc(), ReviewMetrics.id)
        )
        with self._db.session() as session:
            return list(session.scalars(query))

    def delete_old_metrics(self, retention_days: int) -> None:
        """Delete records dated on or before the day ``retention_days`` ago."""
        cutoff = (datetime.now() - timedelta(days=retention_days)).date()
        with self._db.session() as session:
            session.execute(delete(ReviewMetrics).where(ReviewMetrics.date <= cutoff))

    def get_daily_stats(self, date: DateLike) -> Dict[str, Any]:
        """Totals for one day: ``total_reviews``, ``avg_ttfr`` and ``total_completed``."""
        day = _as_date(date)
        on_day = ReviewMetrics.date == day
        with self._db.session() as session:
            total_reviews = session.scalar(select(func.sum(ReviewMetrics.total_reviews)).where(on_day))
            avg_ttfr = session.scalar(
                select(func.avg(ReviewMetrics.avg_ttfr)).where(
                    on_day, ReviewMetrics.avg_ttfr.is_not(None)
                )
            )
            total_completed = session.scalar(
                select(func.sum(ReviewMetrics.completed_reviews)).where(on_day)
            )
        return {
            "total_reviews": int(total_reviews or 0),
            "avg_ttfr": float(avg_ttfr or 0.0),
            "total_completed": int(total_completed or 0),
        }