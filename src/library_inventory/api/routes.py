"""
HTTP routes for the library inventory backend.

Every route except login and the health check requires a staff bearer
token. Domain errors raised below propagate to the handlers installed by
``create_app`` and become ``{"error", "kind", "details"}`` bodies.
"""

import logging
from collections.abc import Generator
from datetime import date

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..database.catalog_repository import (
    AuthorCreateSchema,
    AuthorRepository,
    ItemCreateSchema,
    ItemRepository,
    PublisherCreateSchema,
    PublisherRepository,
)
from ..database.patron_repository import PatronCreateSchema, PatronRepository
from ..database.repository import PaginationParams
from ..database.staff_repository import StaffRepository
from ..models.catalog import ItemKind
from ..models.loan import LoanHistoryFilter
from ..models.staff import Actor
from ..models.stats import HistoryOperation, LoanHistoryReportFilter
from ..services.availability import AvailabilityEngine
from ..services.reporting import ReportingProjection
from .auth import authenticate, create_token, get_current_actor

logger = logging.getLogger(__name__)

router = APIRouter()


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class IssueRequest(BaseModel):
    item_barcode: str = Field(..., min_length=1)
    patron_barcode: str = Field(..., min_length=1)


class ReturnRequest(BaseModel):
    item_barcode: str = Field(..., min_length=1)


def get_session(request: Request) -> Generator[Session, None, None]:
    """One session per request, committed on success and rolled back on error."""
    with request.app.state.db_manager.session_scope() as session:
        yield session


def get_engine(request: Request, session: Session = Depends(get_session)) -> AvailabilityEngine:
    return AvailabilityEngine(session, now=request.app.state.clock)


def get_reporting(
    request: Request, session: Session = Depends(get_session)
) -> ReportingProjection:
    return ReportingProjection(session, now=request.app.state.clock)


@router.get("/health")
def health(request: Request):
    db_ok = request.app.state.db_manager.verify_connection()
    return {
        "status": "ok" if db_ok else "degraded",
        "database": db_ok,
        "version": request.app.state.config.server_version,
    }


@router.post("/auth/login")
def login(body: LoginRequest, request: Request, session: Session = Depends(get_session)):
    staff = authenticate(StaffRepository(session), body.username, body.password)
    logger.info("Staff %s logged in", staff.username)
    return {"token": create_token(request.app.state.config, staff), "user": staff}


@router.post("/loans/issue", status_code=status.HTTP_201_CREATED)
def issue_item(
    body: IssueRequest,
    actor: Actor = Depends(get_current_actor),
    engine: AvailabilityEngine = Depends(get_engine),
):
    loan = engine.issue(body.item_barcode, body.patron_barcode, actor.staff_id)
    return {"message": "Item issued", "loan": loan}


@router.post("/loans/return")
def return_item(
    body: ReturnRequest,
    actor: Actor = Depends(get_current_actor),
    engine: AvailabilityEngine = Depends(get_engine),
):
    receipt = engine.return_item(body.item_barcode, actor.staff_id)
    return {"message": "Item returned", "loan": receipt}


@router.get("/loans/active")
def active_loans(
    search: str | None = None,
    actor: Actor = Depends(get_current_actor),
    reporting: ReportingProjection = Depends(get_reporting),
):
    return reporting.active_loans(search)


@router.get("/loans/history")
def loan_history(
    item_id: int | None = None,
    patron_id: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    actor: Actor = Depends(get_current_actor),
    reporting: ReportingProjection = Depends(get_reporting),
):
    return reporting.history(
        LoanHistoryFilter(
            item_id=item_id, patron_id=patron_id, date_from=date_from, date_to=date_to
        )
    )


@router.get("/loans/overdue")
def overdue_loans(
    actor: Actor = Depends(get_current_actor),
    reporting: ReportingProjection = Depends(get_reporting),
):
    return reporting.overdue_loans()


@router.get("/reports/loan-history")
def loan_history_report(
    item_id: int | None = None,
    patron_id: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    operation: HistoryOperation = HistoryOperation.ALL,
    actor: Actor = Depends(get_current_actor),
    reporting: ReportingProjection = Depends(get_reporting),
):
    loans = reporting.loan_history_report(
        LoanHistoryReportFilter(
            item_id=item_id,
            patron_id=patron_id,
            date_from=date_from,
            date_to=date_to,
            operation=operation,
        )
    )
    return {"operation": operation, "count": len(loans), "loans": loans}


@router.get("/dashboard/stats")
def dashboard_stats(
    actor: Actor = Depends(get_current_actor),
    reporting: ReportingProjection = Depends(get_reporting),
):
    return reporting.dashboard_stats()


@router.get("/items")
def list_items(
    search: str | None = None,
    kind: ItemKind | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
    reporting: ReportingProjection = Depends(get_reporting),
):
    return reporting.search_catalog(
        query=search, kind=kind, pagination=PaginationParams(page=page, page_size=page_size)
    )


@router.get("/items/barcode/{barcode}")
def get_item_by_barcode(
    barcode: str,
    actor: Actor = Depends(get_current_actor),
    session: Session = Depends(get_session),
):
    return ItemRepository(session).require_by_barcode(barcode)


@router.post("/items", status_code=status.HTTP_201_CREATED)
def create_item(
    body: ItemCreateSchema,
    actor: Actor = Depends(get_current_actor),
    session: Session = Depends(get_session),
):
    return ItemRepository(session).create(body, actor_id=actor.staff_id)


@router.post("/authors", status_code=status.HTTP_201_CREATED)
def create_author(
    body: AuthorCreateSchema,
    actor: Actor = Depends(get_current_actor),
    session: Session = Depends(get_session),
):
    return AuthorRepository(session).create(body)


@router.post("/publishers", status_code=status.HTTP_201_CREATED)
def create_publisher(
    body: PublisherCreateSchema,
    actor: Actor = Depends(get_current_actor),
    session: Session = Depends(get_session),
):
    return PublisherRepository(session).create(body)


@router.get("/patrons/barcode/{barcode}")
def get_patron_by_barcode(
    barcode: str,
    actor: Actor = Depends(get_current_actor),
    session: Session = Depends(get_session),
):
    return PatronRepository(session).require_by_barcode(barcode)


@router.post("/patrons", status_code=status.HTTP_201_CREATED)
def create_patron(
    body: PatronCreateSchema,
    actor: Actor = Depends(get_current_actor),
    session: Session = Depends(get_session),
):
    return PatronRepository(session).create(body, actor_id=actor.staff_id)
