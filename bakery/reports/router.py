from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from bakery.database import get_db
from bakery.reports import schemas, service
from bakery.users.permissions import role_required, ADMIN, CASHIER
from bakery.users.schemas import UserDisplaySchema
from bakery.users.scope import BranchScope

router = APIRouter()


def _csv_response(content: str, filename: str):
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/daily-sales", response_model=schemas.DailySalesReport)
def daily_sales_report(
    report_date: date = Query(...),
    branch_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN, CASHIER])),
):
    return service.daily_sales_report(db, report_date, BranchScope.for_user(current_user), branch_id)


@router.get("/daily-sales/export")
def export_daily_sales(
    report_date: date = Query(...),
    branch_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN, CASHIER])),
):
    content = service.export_daily_sales_csv(
        db, report_date, BranchScope.for_user(current_user), branch_id
    )
    return _csv_response(content, f"daily_sales_{report_date.isoformat()}.csv")


@router.get("/sales-summary", response_model=schemas.SalesSummary)
def sales_summary(
    start_date: date = Query(...),
    end_date: date = Query(...),
    branch_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN, CASHIER])),
):
    return service.sales_summary(
        db, BranchScope.for_user(current_user), start_date, end_date, branch_id
    )


@router.get("/transactions/export")
def export_transactions(
    start_date: date = Query(...),
    end_date: date = Query(...),
    branch_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: UserDisplaySchema = Depends(role_required([ADMIN, CASHIER])),
):
    content = service.export_transactions_csv(
        db, BranchScope.for_user(current_user), start_date, end_date, branch_id
    )
    return _csv_response(content, f"transactions_{start_date.isoformat()}_{end_date.isoformat()}.csv")
