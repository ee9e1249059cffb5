"""Storage of badges and the badges users have earned."""

from datetime import datetime
from typing import List

from sqlalchemy import delete, func, select
from sqlalchemy.orm import selectinload

from reviewer_roulette.database import Database, NotFoundError
from reviewer_roulette.models import Badge, User, UserBadge


class BadgeRepository:
    """Create badges and award them to users."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def create(self, badge: Badge) -> Badge:
        """Insert a badge; the passed object receives its id."""
        with self._db.session() as session:
            session.add(badge)
            session.flush()
        return badge

    def get_by_id(self, badge_id: int) -> Badge:
        """Return the badge with this id."""
        with self._db.session() as session:
            badge = session.get(Badge, badge_id)
        if badge is None:
            raise NotFoundError(f"badge {badge_id} not found")
        return badge

    def get_by_name(self, name: str) -> Badge:
        """Return the badge with this name."""
        with self._db.session() as session:
            badge = session.scalars(select(Badge).where(Badge.name == name).limit(1)).first()
        if badge is None:
            raise NotFoundError(f"badge {name!r} not found")
        return badge

    def get_all(self) -> List[Badge]:
        """Return all badges, oldest first."""
        with self._db.session() as session:
            return list(session.scalars(select(Badge).order_by(Badge.created_at, Badge.id)))

    def update(self, badge: Badge) -> Badge:
        """Save every field of ``badge``."""
        with self._db.session() as session:
            merged = session.merge(badge)
            session.flush()
            badge.id = merged.id
        return badge

    def delete(self, badge_id: int) -> None:
        """Delete a badge by id."""
        with self._db.session() as session:
            session.execute(delete(Badge).where(Badge.id == badge_id))

    def award_badge(self, user_id: int, badge_id: int) -> None:
        """Award a badge to a user; awarding it again does nothing."""
        if self.has_user_earned_badge(user_id, badge_id):
            return
        with self._db.session() as session:
            session.add(UserBadge(user_id=user_id, badge_id=badge_id, earned_at=datetime.now()))

    def get_user_badges(self, user_id: int) -> List[UserBadge]:
        """Return a user's badges, most recent first, with badge and user loaded."""
        query = (
            select(UserBadge)
            .where(UserBadge.user_id == user_id)
            .options(selectinload(UserBadge.badge), selectinload(UserBadge.user))
            .order_by(UserBadge.earned_at.desc(), UserBadge.id.desc())
        )
        with self._db.session() as session:
            return list(session.scalars(query))

    def _count(self, *conditions) -> int:
        query = select(func.count()).select_from(UserBadge).where(*conditions)
        with self._db.session() as session:
            return session.scalar(query) or 0

    def has_user_earned_badge(self, user_id: int, badge_id: int) -> bool:
        """Whether the user holds the badge."""
        return self._count(UserBadge.user_id == user_id, UserBadge.badge_id == badge_id) > 0

    def get_users_with_badge(self, badge_id: int) -> List[User]:
        """Return the holders of a badge, most recent award first."""
        query = (
            select(User)
            .join(UserBadge, UserBadge.user_id == User.id)
            .where(UserBadge.badge_id == badge_id)
            .order_by(UserBadge.earned_at.desc(), UserBadge.id.desc())
        )
        with self._db.session() as session:
            return list(session.scalars(query))

    def get_badge_holders_count(self, badge_id: int) -> int:
        """Number of awards of a badge."""
        return self._count(UserBadge.badge_id == badge_id)

    def revoke_user_badge(self, user_id: int, badge_id: int) -> None:
        """Take a badge away from a user."""
        with self._db.session() as session:
            session.execute(
                delete(UserBadge).where(
                    UserBadge.user_id == user_id, UserBadge.badge_id == badge_id
                )
            )

    def get_user_badge_count(self, user_id: int) -> int:
        """Number of badges a user holds."""
        return self._count(UserBadge.user_id == user_id)

    def get_recently_awarded_badges(self, since: datetime) -> List[UserBadge]:
        """Return awards made at or after ``since``, most recent first."""
        query = (
            select(UserBadge)
            .where(UserBadge.earned_at >= since)
            .options(selectinload(UserBadge.badge), selectinload(UserBadge.user))
            .order_by(UserBadge.earned_at.desc(), UserBadge.id.desc())
        )
        with self._db.session() as session:
            return list(session.scalars(query))