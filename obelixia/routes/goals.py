"""Goal routes: cascade management, personal progress and monthly history."""

from datetime import date

from fastapi import APIRouter, HTTPException, Query, status

from .. import database, notices
from ..auth import CurrentUser, ManagerUser
from ..database import Database
from ..logging_config import get_logger
from ..models import (
    DistributionResponse,
    Goal,
    GoalCreate,
    GoalHistoryResponse,
    GoalListResponse,
    GoalMutationResponse,
    GoalProgress,
    MonthlyProgress,
    PersonalProgressResponse,
)
from ..services import goals as goal_service

logger = get_logger("obelixia.goals")
router = APIRouter(prefix="/goals", tags=["goals"])


async def _load_goal(db, goal_id: str, organization_id: str | None) -> dict:
    goal = await database.get_goal(db, goal_id, organization_id)
    if not goal:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Goal not found")
    return goal


@router.get("", response_model=GoalListResponse)
async def list_goals(
    user: CurrentUser,
    db: Database,
    level: str | None = Query(None, pattern="^(empresa|oficina|individual)$"),
):
    """List the tenant's goals, optionally for one cascade level."""
    rows = await database.list_goals(db, user.organization_id, level)
    return GoalListResponse(goals=[Goal(**row) for row in rows], total=len(rows))


@router.post("", response_model=GoalMutationResponse, status_code=status.HTTP_201_CREATED)
async def create_goal(request: GoalCreate, user: ManagerUser, db: Database):
    row = request.model_dump(mode="json")
    row["contributes_to_parent"] = True
    row["created_by"] = user.user_id
    if user.organization_id:
        row["organization_id"] = user.organization_id
    if request.goal_level != "oficina":
        row.pop("office")
    if request.goal_level != "individual":
        row.pop("assigned_to")

    created = await database.insert_goals(db, [row])
    if not created:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Goal was not stored")

    logger.info(f"GOAL CREATED | {user.user_id} | {created[0]['id']} level={request.goal_level}")
    return GoalMutationResponse(goal=Goal(**created[0]), notices=[notices.success("Goal created")])


@router.get("/personal", response_model=PersonalProgressResponse)
async def personal_progress(user: CurrentUser, db: Database):
    """Progress of the caller's active goals, computed from their own activity."""
    rows = await database.list_active_goals_for_user(db, user.user_id, date.today())

    items = []
    for row in rows:
        current = await _current_value(db, row, user.user_id)
        percentage = goal_service.goal_progress(current, row["target_value"])
        items.append(GoalProgress(
            goal=Goal(**row),
            current=current,
            percentage=percentage,
            status=goal_service.progress_status(percentage),
        ))
    return PersonalProgressResponse(items=items)


async def _current_value(db, goal: dict, user_id: str) -> float:
    metric = goal["metric_type"]
    start, end = goal["period_start"], goal["period_end"]

    if metric == "visits":
        return await database.count_visits(db, user_id, start, end)
    if metric == "successful_visits":
        return await database.count_visits(
            db, user_id, start, end, result_value=goal_service.SUCCESSFUL_VISIT_RESULT
        )
    if metric == "companies":
        return await database.count_companies_for_gestor(db, user_id)
    if metric == "products_offered":
        offered = await database.list_offered_products(db, user_id, start, end)
        return goal_service.count_offered_products(offered)
    if metric == "average_vinculacion":
        return goal_service.average(await database.list_vinculacion_for_gestor(db, user_id))
    return 0.0


@router.get("/history", response_model=GoalHistoryResponse)
async def goal_history(
    user: CurrentUser,
    db: Database,
    months: int = Query(6, ge=1, le=24),
):
    """TPV revenue, affiliation and commission against goals for recent months.

    Managers see every terminal of the tenant; gestores only the terminals of
    the companies they manage.
    """
    month_starts = goal_service.month_range(date.today(), months)
    start, end = month_starts[0], goal_service.month_end(month_starts[-1])

    company_ids = None
    if not user.is_manager:
        company_ids = await database.list_company_ids_for_gestor(db, user.user_id)
        if not company_ids:
            return GoalHistoryResponse(months=[], trends={"revenue": 0, "affiliation": 0, "commission": 0})

    goals = await database.list_goals_overlapping(
        db, list(goal_service.TPV_METRICS), start, end, user.organization_id
    )
    terminals = await database.list_tpv_terminals(db, user.organization_id, company_ids)
    commissions = await database.list_commission_rates(db, [t["id"] for t in terminals])

    history = goal_service.monthly_goal_history(goals, terminals, commissions, month_starts)
    return GoalHistoryResponse(
        months=[MonthlyProgress(**m) for m in history],
        trends={
            key: goal_service.history_trend(history, key)
            for key in ("revenue", "affiliation", "commission")
        },
    )


@router.delete("/{goal_id}")
async def delete_goal(goal_id: str, user: ManagerUser, db: Database):
    deleted = await database.delete_goal(db, goal_id, user.organization_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Goal not found")
    logger.info(f"GOAL DELETED | {user.user_id} | {goal_id}")
    return {"deleted": True, "notices": [notices.success("Goal deleted").model_dump()]}


@router.post("/{goal_id}/distribute/offices", response_model=DistributionResponse)
async def distribute_to_offices(goal_id: str, user: ManagerUser, db: Database):
    """Split a company goal evenly across every office of the tenant.

    Without any office configured the request fails with 400.
    """
    parent = await _load_goal(db, goal_id, user.organization_id)
    profiles = await database.list_profiles(db, user.organization_id)
    offices = goal_service.unique_offices(profiles)

    rows = goal_service.build_office_goals(parent, offices, user.user_id)

    created = await database.insert_goals(db, rows)
    logger.info(f"DISTRIBUTE | {goal_id} -> {len(created)} offices")
    return DistributionResponse(
        parent_goal_id=goal_id,
        created=[Goal(**row) for row in created],
        share=rows[0]["target_value"],
        notices=[notices.success(f"Goal distributed to {len(offices)} offices")],
    )


@router.post("/{goal_id}/distribute/gestores", response_model=DistributionResponse)
async def distribute_to_gestores(goal_id: str, user: ManagerUser, db: Database):
    """Split an office goal evenly across the gestores of that office."""
    parent = await _load_goal(db, goal_id, user.organization_id)
    profiles = await database.list_profiles(db, user.organization_id)

    rows = goal_service.build_individual_goals(parent, profiles, user.user_id)

    created = await database.insert_goals(db, rows)
    logger.info(f"DISTRIBUTE | {goal_id} -> {len(created)} gestores")
    return DistributionResponse(
        parent_goal_id=goal_id,
        created=[Goal(**row) for row in created],
        share=rows[0]["target_value"],
        notices=[notices.success(f"Goal distributed to {len(rows)} gestores")],
    )
