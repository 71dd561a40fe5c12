"""Financial report routes."""

from fastapi import APIRouter, Query

from .. import database
from ..auth import CurrentUser
from ..database import Database
from ..models import TrendPoint, TrendResponse
from ..services import trends

router = APIRouter(prefix="/companies", tags=["reports"])


@router.get("/{company_id}/moving-annual-trend", response_model=TrendResponse)
async def moving_annual_trend(
    company_id: str,
    user: CurrentUser,
    db: Database,
    category: str = Query("ventas_ingresos"),
    metric: str = Query("ventas"),
):
    """Monthly TAM of one metric for the latest two fiscal years.

    An unknown category is rejected with 400; an unknown metric yields a
    series of zeros.
    """
    income, balance = await database.get_company_statements(db, company_id, user.organization_id)
    points = trends.moving_annual_trend(income, balance, category, metric)
    return TrendResponse(
        company_id=company_id,
        category=category,
        metric=metric,
        points=[TrendPoint(**p) for p in points],
    )
