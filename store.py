from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Iterator, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import StoreError
from models import Transaction, User

logger = logging.getLogger(__name__)

MUTABLE_FIELDS = frozenset({"amount_cents", "description", "receipt_url", "is_payment"})


@contextmanager
def store_errors(session: Session, operation: str) -> Iterator[None]:
    """Roll back and surface any driver failure as an opaque StoreError."""
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception(f"store_failure: operation={operation}")
        raise StoreError(f"Store failure during {operation}") from exc


class TransactionStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    def scan_transactions(
        self,
        participant_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        *,
        newest_first: bool = False,
    ) -> list[Transaction]:
        stmt = select(Transaction).where(
            or_(
                Transaction.payer_id == participant_id,
                Transaction.recipient_id == participant_id,
            )
        )
        if start is not None:
            stmt = stmt.where(Transaction.created_at >= start)
        if end is not None:
            stmt = stmt.where(Transaction.created_at <= end)
        if newest_first:
            stmt = stmt.order_by(Transaction.created_at.desc(), Transaction.id.desc())
        else:
            stmt = stmt.order_by(Transaction.created_at.asc(), Transaction.id.asc())
        with store_errors(self.session, "scan_transactions"):
            return list(self.session.scalars(stmt).all())

    def get(self, transaction_id: int) -> Optional[Transaction]:
        with store_errors(self.session, "get_transaction"):
            return self.session.get(Transaction, transaction_id)

    def insert_one(self, txn: Transaction) -> Transaction:
        return self.insert_many([txn])[0]

    def insert_many(self, txns: list[Transaction]) -> list[Transaction]:
        """Write every row or none of them."""
        with store_errors(self.session, "insert_many"):
            self.session.add_all(txns)
            self.session.flush()
            self.session.commit()
            for txn in txns:
                self.session.refresh(txn)
        return txns

    def update_one(self, txn: Transaction, patch: dict[str, object]) -> Transaction:
        unknown = set(patch) - MUTABLE_FIELDS - {"updated_at"}
        if unknown:
            raise ValueError(f"Immutable fields in patch: {sorted(unknown)}")
        with store_errors(self.session, "update_one"):
            for key, value in patch.items():
                setattr(txn, key, value)
            self.session.commit()
            self.session.refresh(txn)
        return txn

    def delete_one(self, txn: Transaction) -> None:
        with store_errors(self.session, "delete_one"):
            self.session.delete(txn)
            self.session.commit()


class UserDirectory:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: str) -> Optional[User]:
        with store_errors(self.session, "get_user"):
            return self.session.get(User, user_id)

    def resolve_users(self, ids: Iterable[str]) -> dict[str, User]:
        wanted = set(ids)
        if not wanted:
            return {}
        stmt = select(User).where(User.id.in_(wanted))
        with store_errors(self.session, "resolve_users"):
            return {user.id: user for user in self.session.scalars(stmt).all()}

    def search_users(self, query: str, excluding: str, limit: int = 10) -> list[User]:
        term = query.strip().lower()
        if not term:
            return []
        stmt = (
            select(User)
            .where(
                User.id != excluding,
                or_(
                    func.lower(User.name).contains(term, autoescape=True),
                    func.lower(func.coalesce(User.email, "")).contains(
                        term, autoescape=True
                    ),
                ),
            )
            .order_by(User.name.asc(), User.id.asc())
            .limit(limit)
        )
        with store_errors(self.session, "search_users"):
            return list(self.session.scalars(stmt).all())

    def upsert(self, user_id: str, name: str, email: Optional[str]) -> User:
        with store_errors(self.session, "upsert_user"):
            user = self.session.get(User, user_id)
            if user is None:
                user = User(id=user_id, name=name, email=email)
                self.session.add(user)
            else:
                user.name = name
                user.email = email
            self.session.commit()
            self.session.refresh(user)
        return user

    def rename(self, user: User, name: str) -> User:
        with store_errors(self.session, "rename_user"):
            user.name = name
            self.session.commit()
            self.session.refresh(user)
        return user
