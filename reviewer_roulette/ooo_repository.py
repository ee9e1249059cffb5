"""Storage of out-of-office periods."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import selectinload

from reviewer_roulette.database import Database, NotFoundError
from reviewer_roulette.models import OOOStatus


def _active_at(moment: datetime):
    return (OOOStatus.start_date <= moment, OOOStatus.end_date >= moment)


class OOORepository:
    """Create, find and remove out-of-office entries."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def is_user_ooo(self, user_id: int) -> bool:
        """Whether the user has an entry covering the current moment."""
        query = (
            select(func.count())
            .select_from(OOOStatus)
            .where(OOOStatus.user_id == user_id, *_active_at(datetime.now()))
        )
        with self._db.session() as session:
            return (session.scalar(query) or 0) > 0

    def get_active_ooo(self, user_id: int) -> List[OOOStatus]:
        """Return the user's entries covering the current moment."""
        query = select(OOOStatus).where(
            OOOStatus.user_id == user_id, *_active_at(datetime.now())
        )
        with self._db.session() as session:
            return list(session.scalars(query.order_by(OOOStatus.id)))

    def create_ooo(self, status: OOOStatus) -> OOOStatus:
        """Insert an entry; the passed object receives its id."""
        with self._db.session() as session:
            session.add(status)
            session.flush()
        return status

    def delete_ooo(self, ooo_id: int) -> None:
        """Delete an entry; raises NotFoundError when there is none."""
        with self._db.session() as session:
            result = session.execute(delete(OOOStatus).where(OOOStatus.id == ooo_id))
            if result.rowcount == 0:
                raise NotFoundError(f"OOO entry {ooo_id} not found")

    def get_ooo_by_id(self, ooo_id: int) -> OOOStatus:
        """Return the entry with this id."""
        with self._db.session() as session:
            status = session.get(OOOStatus, ooo_id)
        if status is None:
            raise NotFoundError(f"OOO entry {ooo_id} not found")
        return status

    def get_all_ooo_for_user(self, user_id: int) -> List[OOOStatus]:
        """Return past, present and future entries, latest start first."""
        query = (
            select(OOOStatus)
            .where(OOOStatus.user_id == user_id)
            .order_by(OOOStatus.start_date.desc(), OOOStatus.id.desc())
        )
        with self._db.session() as session:
            return list(session.scalars(query))

    def get_all_active(self) -> List[OOOStatus]:
        """Return every active entry of every user, with the user loaded."""
        query = (
            select(OOOStatus)
            .where(*_active_at(datetime.now()))
            .options(selectinload(OOOStatus.user))
            .order_by(OOOStatus.id)
        )
        with self._db.session() as session:
            return list(session.scalars(query))

    def get_active_by_user_id(self, user_id: int) -> Optional[OOOStatus]:
        """Return one active entry for the user, or None."""
        query = (
            select(OOOStatus)
            .where(OOOStatus.user_id == user_id, *_active_at(datetime.now()))
            .order_by(OOOStatus.id)
            .limit(1)
        )
        with self._db.session() as session:
            return session.scalars(query).first()