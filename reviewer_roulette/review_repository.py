"""Storage of merge request reviews and reviewer assignments."""

from datetime import datetime
from typing import Any, Dict, List

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import selectinload

from reviewer_roulette.database import Database, NotFoundError
from reviewer_roulette.models import MRReview, MRStatus, ReviewerAssignment

_ACTIVE_STATUSES = (
    MRStatus.PENDING.value,
    MRStatus.IN_REVIEW.value,
    MRStatus.APPROVED.value,
)
_PENDING_STATUSES = (MRStatus.PENDING.value, MRStatus.IN_REVIEW.value)
_COMPLETED_STATUSES = (MRStatus.MERGED.value, MRStatus.CLOSED.value)


def _with_assignments():
    return selectinload(MRReview.assignments).selectinload(ReviewerAssignment.user)


class ReviewRepository:
    """Create, find and update merge request reviews and their assignments."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def create_mr_review(self, review: MRReview) -> MRReview:
        """Insert a review; the passed object receives its id."""
        with self._db.session() as session:
            session.add(review)
            session.flush()
        return review

    def get_mr_review(self, project_id: int, mr_iid: int) -> MRReview:
        """Return the review of a merge request, with assignments and their users."""
        query = (
            select(MRReview)
            .where(MRReview.gitlab_project_id == project_id, MRReview.gitlab_mr_iid == mr_iid)
            .options(_with_assignments())
            .limit(1)
        )
        with self._db.session() as session:
            review = session.scalars(query).first()
        if review is None:
            raise NotFoundError(f"MR review for project {project_id}, MR {mr_iid} not found")
        return review

    def get_mr_review_by_id(self, review_id: int) -> MRReview:
        """Return the review with this id, with assignments and their users."""
        query = select(MRReview).where(MRReview.id == review_id).options(_with_assignments())
        with self._db.session() as session:
            review = session.scalars(query).first()
        if review is None:
            raise NotFoundError(f"MR review {review_id} not found")
        return review

    def update_mr_review(self, review: MRReview) -> MRReview:
        """Save every field of ``review``."""
        with self._db.session() as session:
            merged = session.merge(review)
            session.flush()
            review.id = merged.id
        return review

    def create_or_update_mr_review(self, review: MRReview) -> MRReview:
        """Update the review of the same merge request, or create it.

        The id and creation time of an existing review are kept, and so is its
        bot comment id when ``review`` carries none.
        """
        try:
            existing = self.get_mr_review(review.gitlab_project_id, review.gitlab_mr_iid)
        except NotFoundError:
            return self.create_mr_review(review)
        review.id = existing.id
        review.created_at = existing.created_at
        if review.bot_comment_id is None and existing.bot_comment_id is not None:
            review.bot_comment_id = existing.bot_comment_id
        return self.update_mr_review(review)

    def create_assignment(self, assignment: ReviewerAssignment) -> ReviewerAssignment:
        """Insert an assignment; the passed object receives its id."""
        with self._db.session() as session:
            session.add(assignment)
            session.flush()
        return assignment

    def update_assignment(self, assignment: ReviewerAssignment) -> ReviewerAssignment:
        """Save every field of ``assignment``."""
        with self._db.session() as session:
            merged = session.merge(assignment)
            session.flush()
            assignment.id = merged.id
        return assignment

    def get_assignments_by_mr_review_id(self, mr_review_id: int) -> List[ReviewerAssignment]:
        """Return the assignments of a review, with users loaded."""
        query = (
            select(ReviewerAssignment)
            .where(ReviewerAssignment.mr_review_id == mr_review_id)
            .options(selectinload(ReviewerAssignment.user))
            .order_by(ReviewerAssignment.id)
        )
        with self._db.session() as session:
            return list(session.scalars(query))

    def get_active_assignments_by_user_id(self, user_id: int) -> List[ReviewerAssignment]:
        """Return a user's assignments on reviews still in progress."""
        query = (
            select(ReviewerAssignment)
            .join(MRReview, MRReview.id == ReviewerAssignment.mr_review_id)
            .where(ReviewerAssignment.user_id == user_id, MRReview.status.in_(_ACTIVE_STATUSES))
            .options(selectinload(ReviewerAssignment.mr_review))
            .order_by(ReviewerAssignment.id)
        )
        with self._db.session() as session:
            return list(session.scalars(query))

    def count_active_reviews_by_user_id(self, user_id: int) -> int:
        """Number of a user's assignments on reviews still in progress."""
        query = (
            select(func.count())
            .select_from(ReviewerAssignment)
            .join(MRReview, MRReview.id == ReviewerAssignment.mr_review_id)
            .where(ReviewerAssignment.user_id == user_id, MRReview.status.in_(_ACTIVE_STATUSES))
        )
        with self._db.session() as session:
            return session.scalar(query) or 0

    def get_recent_assignments_by_user_id(
        self, user_id: int, since: datetime
    ) -> List[ReviewerAssignment]:
        """Return a user's assignments made at or after ``since``."""
        query = (
            select(ReviewerAssignment)
            .where(ReviewerAssignment.user_id == user_id, ReviewerAssignment.assigned_at >= since)
            .options(selectinload(ReviewerAssignment.mr_review))
            .order_by(ReviewerAssignment.id)
        )
        with self._db.session() as session:
            return list(session.scalars(query))

    def list_pending_mr_reviews(self) -> List[MRReview]:
        """Return pending and in-review reviews, earliest triggered first."""
        query = (
            select(MRReview)
            .where(MRReview.status.in_(_PENDING_STATUSES))
            .options(_with_assignments())
            .order_by(MRReview.roulette_triggered_at.asc().nulls_last(), MRReview.id)
        )
        with self._db.session() as session:
            return list(session.scalars(query))

    def list_mr_reviews_by_status(self, status: str) -> List[MRReview]:
        """Return the reviews with the given status."""
        query = (
            select(MRReview)
            .where(MRReview.status == str(status))
            .options(_with_assignments())
            .order_by(MRReview.id)
        )
        with self._db.session() as session:
            return list(session.scalars(query))

    def delete_assignments_by_mr_review_id(self, mr_review_id: int) -> None:
        """Delete every assignment of a review."""
        with self._db.session() as session:
            session.execute(
                delete(ReviewerAssignment).where(ReviewerAssignment.mr_review_id == mr_review_id)
            )

    def get_mr_review_stats(self, start_date: datetime, end_date: datetime) -> Dict[str, Any]:
        """Summarise reviews created in a period.

        Returns ``total_reviews``, ``by_status`` (status to count) and
        ``avg_ttfr_minutes`` (mean trigger-to-first-review time, 0.0 when unknown).
        """
        in_range = MRReview.created_at.between(start_date, end_date)
        with self._db.session() as session:
            total = session.scalar(select(func.count()).select_from(MRReview).where(in_range))
            rows = session.execute(
                select(MRReview.status, func.count()).where(in_range).group_by(MRReview.status)
            ).all()
            pairs = session.execute(
                select(MRReview.roulette_triggered_at, MRReview.first_review_at).where(
                    in_range,
                    MRReview.first_review_at.is_not(None),
                    MRReview.roulette_triggered_at.is_not(None),
                )
            ).all()
        minutes = [(first - triggered).total_seconds() / 60 for triggered, first in pairs]
        return {
            "total_reviews": total or 0,
            "by_status": {status: count for status, count in rows},
            "avg_ttfr_minutes": sum(minutes) / len(minutes) if minutes else 0.0,
        }

    def get_by_project_and_mr(self, project_id: int, mr_iid: int) -> MRReview:
        """Return the review of a merge request without its assignments."""
        query = (
            select(MRReview)
            .where(MRReview.gitlab_project_id == project_id, MRReview.gitlab_mr_iid == mr_iid)
            .limit(1)
        )
        with self._db.session() as session:
            review = session.scalars(query).first()
        if review is None:
            raise NotFoundError(f"MR review for project {project_id} and MR {mr_iid} not found")
        return review

    def get_completed_reviews_by_date_range(
        self, start_date: datetime, end_date: datetime
    ) -> List[MRReview]:
        """Return merged or closed reviews that were merged or closed in a period."""
        query = (
            select(MRReview)
            .where(
                or_(
                    MRReview.merged_at.between(start_date, end_date),
                    MRReview.closed_at.between(start_date, end_date),
                ),
                MRReview.status.in_(_COMPLETED_STATUSES),
            )
            .order_by(MRReview.id)
        )
        with self._db.session() as session:
            return list(session.scalars(query))