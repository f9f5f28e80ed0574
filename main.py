import logging
from typing import Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from config import get_settings
from database import get_db
from models import EditScope, TransactionStatus, TransactionType
from occurrences import InstallmentGroup
from periods import resolve_window
from schemas import (
    AccountIn,
    AccountOut,
    CategoryIn,
    CategoryOut,
    InstallmentGroupOut,
    MutationOut,
    OccurrenceOut,
    SuggestionOut,
    TagIn,
    TagOut,
    TransactionEditIn,
    TransactionIn,
    TransactionOut,
)
from services import (
    AccountService,
    CategoryService,
    OverrideConflict,
    SeriesMutationService,
    TagService,
    TransactionFilters,
    TransactionNotFound,
    TransactionService,
)

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(title="Finance Hub")


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


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = []
    for err in exc.errors():
        loc = ".".join(str(item) for item in err.get("loc", []) if item != "body")
        details.append({"field": loc or "body", "message": err.get("msg", "invalid")})
    return JSONResponse(
        status_code=400, content={"detail": "Invalid request", "errors": details}
    )


def _http_error(exc: ValueError) -> HTTPException:
    if isinstance(exc, TransactionNotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, OverrideConflict):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


@app.get("/api/health")
def health():
    return {"status": "ok", "version": APP_VERSION}


@app.get(
    "/api/transactions",
    response_model=list[Union[InstallmentGroupOut, OccurrenceOut]],
)
def list_transactions(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    month: Optional[str] = None,
    year: Optional[str] = None,
    type: Optional[TransactionType] = None,
    category_id: Optional[int] = Query(None, alias="categoryId"),
    account_id: Optional[int] = Query(None, alias="accountId"),
    tag_id: Optional[int] = Query(None, alias="tagId"),
    is_fixed: Optional[bool] = Query(None, alias="isFixed"),
    status: Optional[TransactionStatus] = None,
    include_overdue: bool = Query(False, alias="includeOverdue"),
    cash_flow: bool = Query(True, alias="cashFlow"),
    group_installments: bool = Query(False, alias="groupInstallments"),
    db: Session = Depends(get_db),
):
    try:
        period = resolve_window(start_date, end_date, month, year)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    filters = TransactionFilters(
        type=type,
        category_id=category_id,
        account_id=account_id,
        tag_id=tag_id,
        is_fixed=is_fixed,
        status=status,
    )
    service = TransactionService(db)
    occurrences = service.list_occurrences(
        period, filters, include_overdue=include_overdue, cash_flow=cash_flow
    )
    if not group_installments:
        return [OccurrenceOut.model_validate(o) for o in occurrences]

    rows = []
    for row in service.group_installments(occurrences):
        if isinstance(row, InstallmentGroup):
            rows.append(InstallmentGroupOut.model_validate(row))
        else:
            rows.append(OccurrenceOut.model_validate(row))
    return rows


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(data: TransactionIn, db: Session = Depends(get_db)):
    try:
        txn = TransactionService(db).create(data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return TransactionOut.model_validate(txn)


@app.get("/api/transactions/suggestions", response_model=list[SuggestionOut])
def transaction_suggestions(
    query: str = "",
    type: Optional[TransactionType] = None,
    db: Session = Depends(get_db),
):
    return TransactionService(db).suggestions(query, type)


@app.put("/api/transactions/{transaction_id}", response_model=MutationOut)
def edit_transaction(
    transaction_id: str, data: TransactionEditIn, db: Session = Depends(get_db)
):
    try:
        result = SeriesMutationService(db).edit(transaction_id, data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return MutationOut.model_validate(result)


@app.delete("/api/transactions/{transaction_id}", response_model=MutationOut)
def delete_transaction(
    transaction_id: str,
    scope: EditScope = EditScope.single,
    db: Session = Depends(get_db),
):
    try:
        result = SeriesMutationService(db).delete(transaction_id, scope)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return MutationOut.model_validate(result)


@app.get("/api/categories", response_model=list[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    return CategoryService(db).list_all()


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(data: CategoryIn, db: Session = Depends(get_db)):
    try:
        return CategoryService(db).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/accounts", response_model=list[AccountOut])
def list_accounts(db: Session = Depends(get_db)):
    return AccountService(db).balances()


@app.post("/api/accounts", response_model=AccountOut, status_code=201)
def create_account(data: AccountIn, db: Session = Depends(get_db)):
    try:
        service = AccountService(db)
        return service.balance(service.create(data))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/tags", response_model=list[TagOut])
def list_tags(db: Session = Depends(get_db)):
    return TagService(db).list_all()


@app.post("/api/tags", response_model=TagOut, status_code=201)
def create_tag(data: TagIn, db: Session = Depends(get_db)):
    try:
        return TagService(db).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.delete("/api/tags/{tag_id}", status_code=204)
def delete_tag(tag_id: int, db: Session = Depends(get_db)):
    try:
        TagService(db).delete(tag_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
