"""Storage and lookup of users."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select

from reviewer_roulette.database import Database, NotFoundError
from reviewer_roulette.models import User


class UserRepository:
    """Create, find and update users."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def create(self, user: User) -> User:
        """Insert a new user; the passed object receives its id."""
        with self._db.session() as session:
            session.add(user)
            session.flush()
        return user

    def _get_one(self, condition, description: str) -> User:
        with self._db.session() as session:
            user = session.scalars(select(User).where(condition).limit(1)).first()
        if user is None:
            raise NotFoundError(f"user with {description} not found")
        return user

    def get_by_gitlab_id(self, gitlab_id: int) -> User:
        """Return the user with this GitLab id."""
        return self._get_one(User.gitlab_id == gitlab_id, f"gitlab_id {gitlab_id}")

    def get_by_username(self, username: str) -> User:
        """Return the user with this username."""
        return self._get_one(User.username == username, f"username {username}")

    def get_by_id(self, user_id: int) -> User:
        """Return the user with this primary key."""
        with self._db.session() as session:
            user = session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"user with id {user_id} not found")
        return user

    def update(self, user: User) -> User:
        """Save every field of ``user``, inserting it if it has no row yet."""
        with self._db.session() as session:
            merged = session.merge(user)
            session.flush()
            user.id = merged.id
        return user

    def list(self, team: Optional[str] = None, role: Optional[str] = None) -> List[User]:
        """Return users, filtered by team and role when they are given."""
        query = select(User)
        if team:
            query = query.where(User.team == team)
        if role:
            query = query.where(User.role == role)
        with self._db.session() as session:
            return list(session.scalars(query.order_by(User.id)))

    def get_by_team(self, team: str) -> List[User]:
        """Return all users of a team."""
        return self.list(team=team)

    def get_by_role(self, role: str) -> List[User]:
        """Return all users with a role."""
        return self.list(role=role)

    def get_by_team_and_role(self, team: str, role: str) -> List[User]:
        """Return users matching both team and role."""
        return self.list(team=team, role=role)

    def create_or_update(self, user: User) -> User:
        """Update the user found by GitLab id, else by username, else create it.

        Returns the stored user.
        """
        with self._db.session() as session:
            existing = session.scalars(
                select(User).where(User.gitlab_id == user.gitlab_id).limit(1)
            ).first()
            if existing is None:
                existing = session.scalars(
                    select(User).where(User.username == user.username).limit(1)
                ).first()
                if existing is not None:
                    existing.gitlab_id = user.gitlab_id
            else:
                existing.username = user.username
            if existing is None:
                session.add(user)
                session.flush()
                return user
            existing.email = user.email
            existing.role = user.role
            existing.team = user.team
            existing.updated_at = datetime.now()
            session.flush()
            return existing