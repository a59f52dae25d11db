import hmac
import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from sqlalchemy.orm import Session

from auth import (
    SESSION_COOKIE,
    issue_session_token,
    read_session_token,
    token_from_header,
)
from config import get_settings
from database import SessionLocal
from errors import AuthorizationError, LedgerError, NotFoundError, ValidationError
from periods import Period, resolve_period
from recents import RecentCounterparties
from schemas import (
    AnalysisOut,
    BalancesOut,
    BulkCreateOut,
    BulkDeleteIn,
    BulkDeleteOut,
    BulkTransactionsIn,
    HistoryEntry,
    IdentityIn,
    SplitExpenseIn,
    TransactionIn,
    TransactionOut,
    TransactionUpdateIn,
    UserNameIn,
    UserOut,
)
from services import (
    AnalysisService,
    BalanceService,
    TransactionService,
    UserService,
    transaction_out,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Ledger")


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()

recent_counterparties = RecentCounterparties()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_user_id(request: Request) -> str:
    token = request.cookies.get(SESSION_COOKIE) or token_from_header(
        request.headers.get("Authorization")
    )
    user_id = read_session_token(token or "")
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


def http_error(exc: LedgerError) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, AuthorizationError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    logger.error(f"request_failed: error={exc}")
    return HTTPException(status_code=500, detail="Internal Server Error")


def period_from_request(request: Request) -> Period:
    params = request.query_params
    range_slug = params.get("range")
    # startDate/endDate are accepted for older clients.
    start = params.get("start") or params.get("startDate")
    end = params.get("end") or params.get("endDate")
    settings = get_settings()
    try:
        today = datetime.now(ZoneInfo(settings.timezone)).date()
        return resolve_period(
            range_slug, start, end, today=today, max_days=settings.max_range_days
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/health")
def health():
    return {"status": "ok", "version": APP_VERSION}


@app.post("/api/session", response_model=UserOut)
def create_session(
    identity: IdentityIn,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    """Sign-in hook for the identity provider's callback.

    The caller must present the shared identity secret; browsers never hit this
    route directly.
    """
    secret = get_settings().identity_secret
    presented = request.headers.get("X-Identity-Secret", "")
    if not secret or not hmac.compare_digest(presented, secret):
        raise HTTPException(status_code=403, detail="Forbidden")
    try:
        user = UserService(db).sign_in(identity)
    except LedgerError as exc:
        raise http_error(exc) from exc
    response.set_cookie(
        SESSION_COOKIE,
        issue_session_token(user.id),
        max_age=get_settings().session_max_age_hours * 3600,
        httponly=True,
        samesite="lax",
    )
    return UserOut.model_validate(user)


@app.delete("/api/session", status_code=204)
def end_session(response: Response):
    response.delete_cookie(SESSION_COOKIE)


@app.get("/api/balances", response_model=BalancesOut)
def balances(
    user_id: str = Depends(current_user_id), db: Session = Depends(get_db)
):
    try:
        return BalanceService(db, user_id).balances()
    except LedgerError as exc:
        raise http_error(exc) from exc


@app.get("/api/analysis", response_model=AnalysisOut)
def analysis(
    request: Request,
    month: Optional[str] = Query(default=None, pattern=r"^\d{4}-\d{2}$"),
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    try:
        return AnalysisService(db, user_id).analyze(period, month)
    except LedgerError as exc:
        raise http_error(exc) from exc


@app.get("/api/transactions", response_model=list[HistoryEntry])
def transaction_history(
    user_id: str = Depends(current_user_id), db: Session = Depends(get_db)
):
    try:
        return TransactionService(db, user_id).history()
    except LedgerError as exc:
        raise http_error(exc) from exc


@app.get("/api/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: int,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user_id).get(transaction_id)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return transaction_out(txn)


@app.post("/api/expenses", response_model=TransactionOut)
def create_expense(
    data: TransactionIn,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user_id).create(data)
    except LedgerError as exc:
        raise http_error(exc) from exc
    recent_counterparties.touch(user_id, [txn.other_party(user_id)])
    return transaction_out(txn)


@app.post("/api/expenses/bulk", response_model=BulkCreateOut)
def create_expenses_bulk(
    data: BulkTransactionsIn,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        txns = TransactionService(db, user_id).create_many(data.transactions)
    except LedgerError as exc:
        raise http_error(exc) from exc
    recent_counterparties.touch(user_id, [txn.other_party(user_id) for txn in txns])
    return BulkCreateOut(
        count=len(txns), transactions=[transaction_out(txn) for txn in txns]
    )


@app.post("/api/expenses/split", response_model=BulkCreateOut)
def create_expense_split(
    data: SplitExpenseIn,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        txns = TransactionService(db, user_id).create_split(data)
    except LedgerError as exc:
        raise http_error(exc) from exc
    recent_counterparties.touch(user_id, [txn.other_party(user_id) for txn in txns])
    return BulkCreateOut(
        count=len(txns), transactions=[transaction_out(txn) for txn in txns]
    )


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int,
    data: TransactionUpdateIn,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user_id).update(transaction_id, data)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return transaction_out(txn)


@app.delete("/api/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: int,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        TransactionService(db, user_id).delete(transaction_id)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return {"deleted": transaction_id}


@app.post("/api/transactions/bulk-delete", response_model=BulkDeleteOut)
def bulk_delete_transactions(
    data: BulkDeleteIn,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    result = TransactionService(db, user_id).delete_many(data.ids)
    return BulkDeleteOut(
        deleted=result.deleted, failed=result.failed, failed_ids=result.failed_ids
    )


@app.get("/api/users/search", response_model=list[UserOut])
def search_users(
    q: Optional[str] = None,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        users = UserService(db, user_id).search(q)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return [UserOut.model_validate(user) for user in users]


@app.get("/api/users/recent", response_model=list[UserOut])
def recent_users(
    user_id: str = Depends(current_user_id), db: Session = Depends(get_db)
):
    try:
        return UserService(db, user_id).resolve(
            recent_counterparties.for_viewer(user_id)
        )
    except LedgerError as exc:
        raise http_error(exc) from exc


@app.get("/api/users", response_model=list[UserOut])
def resolve_users(
    ids: Optional[list[str]] = Query(default=None),
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return UserService(db, user_id).resolve(ids or [])
    except LedgerError as exc:
        raise http_error(exc) from exc


@app.post("/api/user", response_model=UserOut)
def update_user(
    data: UserNameIn,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        user = UserService(db, user_id).rename(data.name)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return UserOut.model_validate(user)
