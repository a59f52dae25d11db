from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from config import get_settings
from errors import AuthorizationError, LedgerError, NotFoundError, ValidationError
from ledger import classify
from models import Bucket, Transaction, TransactionDirection, User, utcnow
from money import (
    CENT,
    MAX_AMOUNT,
    MAX_AMOUNT_CENTS,
    cents_to_amount,
    format_amount,
    round2,
    to_cents,
)
from periods import Period, iter_days, local_date, month_key, utc_bounds
from schemas import (
    MAX_DESCRIPTION_LENGTH,
    AnalysisOut,
    AnalysisSummary,
    AnalysisTrends,
    BalanceEntry,
    BalancesOut,
    DailyPoint,
    HistoryEntry,
    IdentityIn,
    MonthlyAverage,
    SplitExpenseIn,
    TransactionIn,
    TransactionOut,
    TransactionUpdateIn,
    Trend,
    UserOut,
)
from store import TransactionStore, UserDirectory

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"


def user_out(user_id: str, users: dict[str, User]) -> UserOut:
    user = users.get(user_id)
    if user is None:
        return UserOut(id=user_id, name=UNKNOWN, email=UNKNOWN)
    return UserOut.model_validate(user)


def transaction_out(txn: Transaction) -> TransactionOut:
    return TransactionOut(
        id=txn.id,
        amount=cents_to_amount(txn.amount_cents),
        payer_id=txn.payer_id,
        recipient_id=txn.recipient_id,
        description=txn.description,
        is_payment=txn.is_payment,
        receipt_url=txn.receipt_url,
        created_at=txn.created_at,
        updated_at=txn.updated_at,
    )


def net_balances(txns: Iterable[Transaction], viewer_id: str) -> dict[str, int]:
    """Signed cents per counterparty; positive means they owe the viewer."""
    balances: dict[str, int] = defaultdict(int)
    for txn in txns:
        c = classify(txn, viewer_id)
        balances[c.counterparty_id] += c.signed_cents
    return dict(balances)


def trend(series: list[DailyPoint]) -> Optional[Trend]:
    # Endpoint comparison only: first point above last reads as "increasing".
    if len(series) < 2:
        return None
    return "increasing" if series[0].amount > series[-1].amount else "decreasing"


def _mean_amount(values: list[int]) -> Decimal:
    if not values:
        return Decimal("0").quantize(CENT)
    return cents_to_amount(Decimal(sum(values)) / len(values))


def aggregate_period(
    txns: Iterable[Transaction],
    viewer_id: str,
    period: Period,
    tz: ZoneInfo,
    month: Optional[str] = None,
) -> AnalysisOut:
    daily: dict[Bucket, dict] = {bucket: defaultdict(int) for bucket in Bucket}
    totals: dict[Bucket, int] = {bucket: 0 for bucket in Bucket}
    monthly: dict[str, dict[Bucket, list[int]]] = {}

    for txn in txns:
        c = classify(txn, viewer_id)
        day = local_date(txn.created_at, tz)
        per_month = monthly.setdefault(
            month_key(day), {bucket: [] for bucket in Bucket}
        )
        if c.bucket is None:
            continue
        daily[c.bucket][day] += txn.amount_cents
        totals[c.bucket] += txn.amount_cents
        per_month[c.bucket].append(txn.amount_cents)

    days = list(iter_days(period.start, period.end))
    series = {
        bucket: [
            DailyPoint(date=day, amount=cents_to_amount(daily[bucket].get(day, 0)))
            for day in days
        ]
        for bucket in Bucket
    }

    monthly_averages = [
        MonthlyAverage(
            month=key,
            avg_expense=_mean_amount(values[Bucket.expenses]),
            avg_lending=_mean_amount(values[Bucket.lending]),
            avg_borrowing=_mean_amount(values[Bucket.borrowing]),
        )
        for key, values in sorted(monthly.items())
    ]

    return AnalysisOut(
        start=period.start,
        end=period.end,
        month=month,
        daily_expenses=series[Bucket.expenses],
        lending_data=series[Bucket.lending],
        borrowing_data=series[Bucket.borrowing],
        monthly_averages=monthly_averages,
        summary=AnalysisSummary(
            total_expenses=cents_to_amount(totals[Bucket.expenses]),
            total_lending=cents_to_amount(totals[Bucket.lending]),
            total_borrowing=cents_to_amount(totals[Bucket.borrowing]),
            net_balance=cents_to_amount(
                totals[Bucket.lending] - totals[Bucket.borrowing]
            ),
        ),
        trends=AnalysisTrends(
            expenses=trend(series[Bucket.expenses]),
            lending=trend(series[Bucket.lending]),
            borrowing=trend(series[Bucket.borrowing]),
        ),
    )


@dataclass
class BulkDeleteResult:
    deleted: int = 0
    failed: int = 0
    failed_ids: list[int] = field(default_factory=list)


class TransactionService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id
        self.store = TransactionStore(session)
        self.users = UserDirectory(session)

    def _amount_cents(self, amount: Decimal) -> int:
        if amount > MAX_AMOUNT:
            raise ValidationError(
                f"Amount must not exceed {format_amount(MAX_AMOUNT_CENTS)}"
            )
        amount_cents = to_cents(amount)
        if amount_cents <= 0:
            raise ValidationError("Amount must be positive")
        return amount_cents

    def _description(self, text: str) -> str:
        description = (text or "").strip()
        if not description:
            raise ValidationError("Description is required")
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters"
            )
        return description

    def _row(
        self,
        *,
        amount: Decimal,
        direction: TransactionDirection,
        other_id: str,
        description: str,
        receipt_url: Optional[str],
        is_payment: bool,
    ) -> Transaction:
        amount_cents = self._amount_cents(amount)
        description = self._description(description)
        other_id = (other_id or "").strip()
        if not other_id:
            raise ValidationError("Counterparty is required")
        if other_id == self.user_id:
            raise ValidationError("Cannot record a transaction with yourself")
        if self.users.get(other_id) is None:
            raise ValidationError("Unknown counterparty")

        if direction == TransactionDirection.lend:
            payer_id, recipient_id = self.user_id, other_id
        else:
            payer_id, recipient_id = other_id, self.user_id

        return Transaction(
            amount_cents=amount_cents,
            payer_id=payer_id,
            recipient_id=recipient_id,
            description=description,
            is_payment=bool(is_payment),
            receipt_url=(receipt_url or "").strip() or None,
        )

    def _build(self, data: TransactionIn) -> Transaction:
        return self._row(
            amount=data.amount,
            direction=data.type,
            other_id=data.other_user_id,
            description=data.description,
            receipt_url=data.receipt_url,
            is_payment=data.is_payment,
        )

    def _insert_many(self, rows: list[Transaction]) -> list[Transaction]:
        created = self.store.insert_many(rows)
        logger.info(f"transactions_created: count={len(created)} user={self.user_id}")
        return created

    def create(self, data: TransactionIn) -> Transaction:
        txn = self.store.insert_one(self._build(data))
        logger.info(
            f"transaction_created: id={txn.id} payer={txn.payer_id} "
            f"recipient={txn.recipient_id} amount_cents={txn.amount_cents}"
        )
        return txn

    def create_many(self, items: list[TransactionIn]) -> list[Transaction]:
        if not items:
            raise ValidationError("At least one transaction is required")
        # Validate everything before the first write.
        return self._insert_many([self._build(item) for item in items])

    def create_split(self, data: SplitExpenseIn) -> list[Transaction]:
        counterparties = [cid.strip() for cid in data.counterparty_ids]
        if not counterparties:
            raise ValidationError("Select at least one person")
        if not all(counterparties):
            raise ValidationError("Counterparty is required")
        if len(set(counterparties)) != len(counterparties):
            raise ValidationError("Each person can only be selected once")

        if data.is_split:
            per_person = round2(data.total_amount / (len(counterparties) + 1))
        else:
            per_person = round2(data.total_amount)
        if per_person < CENT:
            raise ValidationError(
                "The amount per person would be less than 0.01. "
                "Increase the total amount or reduce the number of people."
            )

        description = data.description.strip()
        if data.is_split:
            each = format_amount(to_cents(per_person))
            currency = get_settings().currency
            description = f"{description} (Split: {each} {currency} each)"

        rows = [
            self._row(
                amount=per_person,
                direction=data.type,
                other_id=cid,
                description=description,
                receipt_url=data.receipt_url,
                is_payment=data.is_payment,
            )
            for cid in counterparties
        ]
        return self._insert_many(rows)

    def get(self, transaction_id: int) -> Transaction:
        txn = self.store.get(transaction_id)
        if txn is None:
            raise NotFoundError("Transaction not found")
        if self.user_id not in (txn.payer_id, txn.recipient_id):
            raise NotFoundError("Transaction not found")
        return txn

    def _get_owned(self, transaction_id: int, action: str) -> Transaction:
        txn = self.store.get(transaction_id)
        if txn is None:
            raise NotFoundError("Transaction not found")
        if txn.payer_id != self.user_id:
            raise AuthorizationError(f"You can only {action} transactions you created")
        return txn

    def update(self, transaction_id: int, data: TransactionUpdateIn) -> Transaction:
        txn = self._get_owned(transaction_id, "edit")
        amount_cents = self._amount_cents(data.amount)
        description = self._description(data.description)

        patch: dict[str, object] = {
            "amount_cents": amount_cents,
            "description": description,
            "receipt_url": (data.receipt_url or "").strip() or None,
            "is_payment": bool(data.is_payment),
            "updated_at": utcnow(),
        }
        txn = self.store.update_one(txn, patch)
        logger.info(f"transaction_updated: id={txn.id} user={self.user_id}")
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self._get_owned(transaction_id, "delete")
        self.store.delete_one(txn)
        logger.info(f"transaction_deleted: id={transaction_id} user={self.user_id}")

    def delete_many(self, transaction_ids: list[int]) -> BulkDeleteResult:
        result = BulkDeleteResult()
        for transaction_id in transaction_ids:
            try:
                self.delete(transaction_id)
            except LedgerError as exc:
                logger.warning(
                    f"bulk_delete_failed: id={transaction_id} user={self.user_id} "
                    f"reason={exc}"
                )
                result.failed += 1
                result.failed_ids.append(transaction_id)
            else:
                result.deleted += 1
        return result

    def history(self) -> list[HistoryEntry]:
        txns = self.store.scan_transactions(self.user_id, newest_first=True)
        users = self.users.resolve_users(
            txn.other_party(self.user_id) for txn in txns
        )
        entries: list[HistoryEntry] = []
        for txn in txns:
            is_lending = txn.payer_id == self.user_id
            entries.append(
                HistoryEntry(
                    id=txn.id,
                    amount=cents_to_amount(txn.amount_cents),
                    description=txn.description,
                    created_at=txn.created_at,
                    type="lent" if is_lending else "borrowed",
                    receipt_url=txn.receipt_url,
                    is_payment=txn.is_payment,
                    can_edit=is_lending,
                    other_person=user_out(txn.other_party(self.user_id), users),
                )
            )
        return entries


class BalanceService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id
        self.store = TransactionStore(session)
        self.users = UserDirectory(session)

    def balances(self) -> BalancesOut:
        txns = self.store.scan_transactions(self.user_id)
        net = net_balances(txns, self.user_id)
        users = self.users.resolve_users(net.keys())

        owes_me = sorted(
            ((cid, cents) for cid, cents in net.items() if cents > 0),
            key=lambda item: (-item[1], item[0]),
        )
        i_owe = sorted(
            ((cid, cents) for cid, cents in net.items() if cents < 0),
            key=lambda item: (item[1], item[0]),
        )
        return BalancesOut(
            owes_me=[
                BalanceEntry(
                    counterparty=user_out(cid, users),
                    net_balance=cents_to_amount(cents),
                )
                for cid, cents in owes_me
            ],
            i_owe=[
                BalanceEntry(
                    counterparty=user_out(cid, users),
                    net_balance=cents_to_amount(cents),
                )
                for cid, cents in i_owe
            ],
        )


class AnalysisService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id
        self.store = TransactionStore(session)
        self.tz = ZoneInfo(get_settings().timezone)

    def analyze(self, period: Period, month: Optional[str] = None) -> AnalysisOut:
        start, end = utc_bounds(period, self.tz)
        txns = self.store.scan_transactions(self.user_id, start, end)
        return aggregate_period(txns, self.user_id, period, self.tz, month)


class UserService:
    def __init__(self, session: Session, user_id: Optional[str] = None) -> None:
        self.session = session
        self.user_id = user_id
        self.users = UserDirectory(session)

    def sign_in(self, identity: IdentityIn) -> User:
        email = (identity.email or "").strip() or None
        user = self.users.upsert(identity.id, identity.name.strip(), email)
        logger.info(f"user_signed_in: id={user.id}")
        return user

    def me(self) -> User:
        user = self.users.get(self.user_id) if self.user_id else None
        if user is None:
            raise NotFoundError("User not found")
        return user

    def rename(self, name: str) -> User:
        clean_name = name.strip()
        if not clean_name:
            raise ValidationError("Name is required")
        return self.users.rename(self.me(), clean_name)

    def search(self, query: Optional[str], limit: Optional[int] = None) -> list[User]:
        if not query or self.user_id is None:
            return []
        return self.users.search_users(
            query, excluding=self.user_id, limit=limit or get_settings().search_limit
        )

    def resolve(self, ids: Iterable[str]) -> list[UserOut]:
        wanted = list(dict.fromkeys(ids))
        users = self.users.resolve_users(wanted)
        return [user_out(user_id, users) for user_id in wanted]
