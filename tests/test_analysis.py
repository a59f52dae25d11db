from datetime import date, datetime, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

from sqlalchemy.orm import sessionmaker

from database import Base, make_engine
from models import Transaction, User
from periods import Period
from services import AnalysisService, aggregate_period

UTC = ZoneInfo("UTC")


def make_session():
    engine = make_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = SessionLocal()
    session.add_all([User(id="alice", name="Alice"), User(id="bob", name="Bob")])
    session.commit()
    return session


def txn(payer, recipient, cents, when, *, is_payment=False):
    return Transaction(
        amount_cents=cents,
        payer_id=payer,
        recipient_id=recipient,
        description="Test",
        is_payment=is_payment,
        created_at=when,
    )


def sample_transactions():
    return [
        # bob lent alice: alice's expense
        txn("bob", "alice", 4_000, datetime(2025, 1, 2, 9, 0)),
        # alice settled with bob: lending series
        txn("alice", "bob", 1_500, datetime(2025, 1, 3, 12, 0), is_payment=True),
        # bob settled with alice: borrowing series
        txn("bob", "alice", 1_000, datetime(2025, 1, 5, 18, 0), is_payment=True),
        # alice lent bob: not charted
        txn("alice", "bob", 9_900, datetime(2025, 1, 5, 19, 0)),
    ]


def test_daily_series_are_contiguous_and_zero_filled() -> None:
    period = Period("custom", date(2025, 1, 1), date(2025, 1, 10))
    out = aggregate_period(sample_transactions(), "alice", period, UTC)

    for series in (out.daily_expenses, out.lending_data, out.borrowing_data):
        assert len(series) == 10
        assert [p.date for p in series] == [
            date(2025, 1, 1) + timedelta(days=i) for i in range(10)
        ]

    expenses = {p.date: p.amount for p in out.daily_expenses}
    assert expenses[date(2025, 1, 2)] == Decimal("40.00")
    assert expenses[date(2025, 1, 1)] == Decimal("0.00")
    assert str(expenses[date(2025, 1, 4)]) == "0.00"

    lending = {p.date: p.amount for p in out.lending_data}
    assert lending[date(2025, 1, 3)] == Decimal("15.00")

    borrowing = {p.date: p.amount for p in out.borrowing_data}
    assert borrowing[date(2025, 1, 5)] == Decimal("10.00")


def test_empty_range_still_produces_full_series() -> None:
    period = Period("custom", date(2024, 2, 27), date(2024, 3, 1))
    out = aggregate_period([], "alice", period, UTC)

    assert len(out.daily_expenses) == 4
    assert date(2024, 2, 29) in [p.date for p in out.daily_expenses]
    assert out.monthly_averages == []
    assert str(out.summary.net_balance) == "0.00"


def test_summary_excludes_loans_the_viewer_handed_out() -> None:
    period = Period("custom", date(2025, 1, 1), date(2025, 1, 31))
    out = aggregate_period(sample_transactions(), "alice", period, UTC)

    assert str(out.summary.total_expenses) == "40.00"
    assert str(out.summary.total_lending) == "15.00"
    assert str(out.summary.total_borrowing) == "10.00"
    assert str(out.summary.net_balance) == "5.00"


def test_bucketing_mirrors_between_the_two_parties() -> None:
    period = Period("custom", date(2025, 1, 1), date(2025, 1, 31))
    out = aggregate_period(sample_transactions(), "bob", period, UTC)

    # bob's own loans to alice are not charted; alice's loan to bob is his expense
    assert out.summary.total_expenses == Decimal("99.00")
    assert out.summary.total_lending == Decimal("10.00")
    assert out.summary.total_borrowing == Decimal("15.00")
    assert out.summary.net_balance == Decimal("-5.00")


def test_monthly_averages_per_bucket() -> None:
    txns = [
        txn("bob", "alice", 1_000, datetime(2025, 1, 10)),
        txn("bob", "alice", 1_501, datetime(2025, 1, 20)),
        txn("alice", "bob", 2_000, datetime(2025, 3, 1), is_payment=True),
        txn("alice", "bob", 500, datetime(2025, 2, 14)),
    ]
    period = Period("custom", date(2025, 1, 1), date(2025, 3, 31))
    out = aggregate_period(txns, "alice", period, UTC, month="2025-02")

    assert out.month == "2025-02"
    assert [m.month for m in out.monthly_averages] == ["2025-01", "2025-02", "2025-03"]

    jan, feb, mar = out.monthly_averages
    assert str(jan.avg_expense) == "12.51"
    assert str(jan.avg_lending) == "0.00"
    assert str(jan.avg_borrowing) == "0.00"
    # a month holding only an uncharted loan is listed with zero averages
    assert feb.avg_expense == feb.avg_lending == feb.avg_borrowing == Decimal("0")
    assert mar.avg_lending == Decimal("20.00")


def test_trend_compares_first_and_last_day_only() -> None:
    txns = [
        txn("bob", "alice", 5_000, datetime(2025, 1, 1, 8, 0)),
        txn("bob", "alice", 100, datetime(2025, 1, 3, 8, 0)),
        txn("bob", "alice", 9_000, datetime(2025, 1, 2, 8, 0)),
    ]
    period = Period("custom", date(2025, 1, 1), date(2025, 1, 3))
    out = aggregate_period(txns, "alice", period, UTC)

    assert out.trends.expenses == "increasing"
    assert out.trends.lending == "decreasing"
    assert out.trends.borrowing == "decreasing"


def test_trend_needs_two_points() -> None:
    period = Period("custom", date(2025, 1, 1), date(2025, 1, 1))
    out = aggregate_period(sample_transactions(), "alice", period, UTC)

    assert len(out.daily_expenses) == 1
    assert out.trends.expenses is None
    assert out.trends.lending is None
    assert out.trends.borrowing is None


def test_service_filters_range_and_buckets_in_reference_timezone() -> None:
    session = make_session()
    session.add_all(
        [
            # 22:30 UTC on Jan 31 is already Feb 1 in Addis Ababa (UTC+3)
            txn("bob", "alice", 2_500, datetime(2025, 1, 31, 22, 30)),
            txn("bob", "alice", 700, datetime(2025, 2, 3, 10, 0)),
            txn("bob", "alice", 99_900, datetime(2025, 3, 1, 10, 0)),
        ]
    )
    session.commit()

    service = AnalysisService(session, "alice")
    service.tz = ZoneInfo("Africa/Addis_Ababa")
    out = service.analyze(Period("custom", date(2025, 2, 1), date(2025, 2, 28)))

    assert len(out.daily_expenses) == 28
    assert out.daily_expenses[0].amount == Decimal("25.00")
    assert out.daily_expenses[2].amount == Decimal("7.00")
    assert out.summary.total_expenses == Decimal("32.00")
    assert [m.month for m in out.monthly_averages] == ["2025-02"]
