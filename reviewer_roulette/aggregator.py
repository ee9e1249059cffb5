"""Daily aggregation of completed reviews into stored metrics."""

import logging
from collections import defaultdict
from datetime import date as date_type
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from reviewer_roulette.metrics_repository import MetricsRepository
from reviewer_roulette.models import MRReview, MRStatus, ReviewerAssignment, ReviewMetrics
from reviewer_roulette.review_repository import ReviewRepository

logger = logging.getLogger(__name__)

EngagementScorer = Callable[[ReviewerAssignment, MRReview], float]

_RECOVERABLE = (SQLAlchemyError, LookupError)


def _start_of_day(moment: Union[date_type, datetime]) -> datetime:
    if isinstance(moment, datetime):
        return datetime(moment.year, moment.month, moment.day, tzinfo=moment.tzinfo)
    return datetime(moment.year, moment.month, moment.day)


def _elapsed(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
    """Seconds from ``start`` to ``end``; None when unknown or negative."""
    if start is None or end is None:
        return None
    seconds = (end - start).total_seconds()
    return seconds if seconds >= 0 else None


def _has_assignment_time(assignment: ReviewerAssignment) -> bool:
    return assignment.assigned_at is not None and assignment.assigned_at.timestamp() > 0


def _whole_minutes(seconds: Optional[float]) -> Optional[int]:
    return None if seconds is None else int(seconds / 60)


def _mean(values: List[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


class AggregatorService:
    """Turns the reviews completed on a day into team and user metrics."""

    def __init__(
        self,
        review_repo: ReviewRepository,
        metrics_repo: MetricsRepository,
        engagement_scorer: Optional[EngagementScorer] = None,
    ) -> None:
        self._reviews = review_repo
        self._metrics = metrics_repo
        self._scorer = engagement_scorer

    def aggregate_daily(self, date: Union[date_type, datetime]) -> None:
        """Aggregate the reviews merged or closed on the day of ``date``.

        Running it again for the same day replaces the stored records.
        """
        start = _start_of_day(date)
        end = start + timedelta(hours=24)
        logger.info("Starting daily metrics aggregation for %s", start)

        reviews = self._reviews.get_completed_reviews_by_date_range(start, end)
        logger.debug("Found %d completed reviews", len(reviews))
        if not reviews:
            logger.info("No completed reviews found for date")
            return

        by_team: Dict[str, List[MRReview]] = defaultdict(list)
        for review in reviews:
            by_team[review.team].append(review)

        for team, team_reviews in by_team.items():
            try:
                self._aggregate_team(start, team, team_reviews)
            except _RECOVERABLE:
                logger.exception("Failed to aggregate team metrics for %s", team)

        for review in reviews:
            try:
                self._aggregate_users(start, review)
            except _RECOVERABLE:
                logger.exception("Failed to aggregate user metrics for review %s", review.id)

        logger.info(
            "Daily metrics aggregation completed for %s: %d teams, %d reviews",
            start,
            len(by_team),
            len(reviews),
        )

    def _aggregate_team(self, day: datetime, team: str, reviews: List[MRReview]) -> None:
        completed = sum(1 for review in reviews if review.status == MRStatus.MERGED.value)
        ttfrs: List[float] = []
        approvals: List[float] = []
        total_comments = 0
        total_length = 0

        for review in reviews:
            ttfr = _elapsed(review.roulette_triggered_at, review.first_review_at)
            if ttfr is not None:
                ttfrs.append(ttfr)
            approval = _elapsed(review.roulette_triggered_at, review.approved_at)
            if approval is not None:
                approvals.append(approval)
            try:
                assignments = self._reviews.get_assignments_by_mr_review_id(review.id)
            except _RECOVERABLE:
                logger.warning("Failed to get assignments for review %s", review.id, exc_info=True)
                continue
            total_comments += sum(a.comment_count or 0 for a in assignments)
            total_length += sum(a.comment_length or 0 for a in assignments)

        count = len(reviews)
        avg_comment_count = total_comments / count if count else 0.0
        avg_comment_length = total_length / count if count else 0.0
        engagement = avg_comment_count * 10.0 + avg_comment_length / 100.0 if count else 0.0
        avg_ttfr = _mean(ttfrs)

        metric = ReviewMetrics(
            date=day,
            team=team,
            total_reviews=count,
            completed_reviews=completed,
            avg_ttfr=_whole_minutes(avg_ttfr),
            avg_time_to_approval=_whole_minutes(_mean(approvals)),
            avg_comment_count=avg_comment_count,
            avg_comment_length=avg_comment_length,
            engagement_score=engagement,
        )
        self._metrics.create_or_update(metric)
        logger.debug(
            "Team metrics aggregated: team=%s total=%d completed=%d avg_ttfr=%s engagement=%s",
            team,
            count,
            completed,
            avg_ttfr,
            engagement,
        )

    def _aggregate_users(self, day: datetime, review: MRReview) -> None:
        assignments = self._reviews.get_assignments_by_mr_review_id(review.id)
        completed = 1 if review.status == MRStatus.MERGED.value else 0

        for assignment in assignments:
            ttfr = 0.0
            approval = 0.0
            if _has_assignment_time(assignment):
                ttfr = _elapsed(assignment.assigned_at, assignment.first_comment_at) or 0.0
                approval = _elapsed(assignment.assigned_at, assignment.approved_at) or 0.0

            engagement = self._scorer(assignment, review) if self._scorer is not None else None

            metric = ReviewMetrics(
                date=day,
                team=review.team,
                user_id=assignment.user_id,
                project_id=review.gitlab_project_id,
                total_reviews=1,
                completed_reviews=completed,
                avg_ttfr=_whole_minutes(ttfr) if ttfr > 0 else None,
                avg_time_to_approval=_whole_minutes(approval) if approval > 0 else None,
                avg_comment_count=float(assignment.comment_count or 0),
                avg_comment_length=float(assignment.comment_length or 0),
                engagement_score=engagement,
            )
            try:
                self._metrics.create_or_update(metric)
            except _RECOVERABLE:
                logger.warning(
                    "Failed to save user metrics for user %s", assignment.user_id, exc_info=True
                )
                continue
            logger.debug(
                "User metrics aggregated: user=%s team=%s engagement=%s",
                assignment.user_id,
                review.team,
                engagement,
            )