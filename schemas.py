from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from models import TransactionDirection
from money import MAX_AMOUNT

Trend = Literal["increasing", "decreasing"]

MAX_DESCRIPTION_LENGTH = 500


class TransactionIn(BaseModel):
    amount: Decimal = Field(..., gt=0, le=MAX_AMOUNT)
    type: TransactionDirection
    other_user_id: str = Field(..., min_length=1, max_length=64)
    description: str = Field(..., min_length=1, max_length=MAX_DESCRIPTION_LENGTH)
    receipt_url: Optional[str] = None
    is_payment: bool = False


class BulkTransactionsIn(BaseModel):
    transactions: list[TransactionIn] = Field(..., min_length=1)


class SplitExpenseIn(BaseModel):
    counterparty_ids: list[str] = Field(..., min_length=1)
    total_amount: Decimal = Field(..., gt=0, le=MAX_AMOUNT)
    description: str = Field(..., min_length=1, max_length=MAX_DESCRIPTION_LENGTH)
    is_split: bool = False
    type: TransactionDirection = TransactionDirection.lend
    receipt_url: Optional[str] = None
    is_payment: bool = False


class TransactionUpdateIn(BaseModel):
    amount: Decimal = Field(..., gt=0, le=MAX_AMOUNT)
    description: str = Field(..., min_length=1, max_length=MAX_DESCRIPTION_LENGTH)
    receipt_url: Optional[str] = None
    is_payment: bool = False


class BulkDeleteIn(BaseModel):
    ids: list[int] = Field(..., min_length=1)


class IdentityIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = Field(default=None, max_length=320)


class UserNameIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: Optional[str] = None


class TransactionOut(BaseModel):
    id: int
    amount: Decimal
    payer_id: str
    recipient_id: str
    description: str
    is_payment: bool
    receipt_url: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class HistoryEntry(BaseModel):
    id: int
    amount: Decimal
    description: str
    created_at: datetime
    type: Literal["lent", "borrowed"]
    receipt_url: Optional[str] = None
    is_payment: bool
    can_edit: bool
    other_person: UserOut


class BalanceEntry(BaseModel):
    counterparty: UserOut
    net_balance: Decimal


class BalancesOut(BaseModel):
    owes_me: list[BalanceEntry]
    i_owe: list[BalanceEntry]


class DailyPoint(BaseModel):
    date: date
    amount: Decimal


class MonthlyAverage(BaseModel):
    month: str
    avg_expense: Decimal
    avg_lending: Decimal
    avg_borrowing: Decimal


class AnalysisSummary(BaseModel):
    total_expenses: Decimal
    total_lending: Decimal
    total_borrowing: Decimal
    net_balance: Decimal


class AnalysisTrends(BaseModel):
    expenses: Optional[Trend] = None
    lending: Optional[Trend] = None
    borrowing: Optional[Trend] = None


class AnalysisOut(BaseModel):
    start: date
    end: date
    month: Optional[str] = None
    daily_expenses: list[DailyPoint]
    lending_data: list[DailyPoint]
    borrowing_data: list[DailyPoint]
    monthly_averages: list[MonthlyAverage]
    summary: AnalysisSummary
    trends: AnalysisTrends


class BulkCreateOut(BaseModel):
    count: int
    transactions: list[TransactionOut]


class BulkDeleteOut(BaseModel):
    deleted: int
    failed: int
    failed_ids: list[int]
