import logging
from dataclasses import asdict
from typing import Optional

from fastapi import (
    BackgroundTasks,
    Depends,
    FastAPI,
    File,
    Header,
    HTTPException,
    Request,
    UploadFile,
)
from fastapi.responses import JSONResponse, Response, StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from csrf import CSRF_HEADER, generate_csrf_token, validate_csrf_token
from csv_utils import (
    export_goals,
    export_transactions,
    export_transactions_json,
    export_trend,
)
from database import get_db
from email_service import deliver
from goals import GoalProgress, evaluate_goal, motivational_tip
from metrics import FinancialMetrics
from models import (
    Contribution,
    Notification,
    Profile,
    RecurringRule,
    SavingsGoal,
    Transaction,
    TransactionType,
)
from periods import Period, resolve_period
from recurrence import RuleProjection, local_today, project_rule, scheduled_dates
from scheduler import SchedulerManager
from schemas import (
    ContributionIn,
    ProfileIn,
    RecurringRuleIn,
    RecurringRuleRecord,
    RuleToggleIn,
    SavingsGoalIn,
    SavingsGoalRecord,
    TransactionIn,
)
from services import (
    ImportService,
    MetricsService,
    NotificationService,
    ProfileService,
    RecurringRuleService,
    SavingsGoalService,
    TransactionFilters,
    TransactionService,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Tracker")

scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"storage_error: {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Something went wrong while saving your data. Please try again."},
    )


def require_csrf(x_csrf_token: Optional[str] = Header(default=None, alias=CSRF_HEADER)) -> None:
    if not validate_csrf_token(x_csrf_token):
        raise HTTPException(status_code=400, detail="Invalid CSRF token")


def period_from_request(request: Request) -> Period:
    period_slug = request.query_params.get("period")
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        return resolve_period(period_slug, start, end, today=local_today())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def filters_from_request(request: Request) -> TransactionFilters:
    type_param = request.query_params.get("type")
    txn_type = None
    if type_param:
        try:
            txn_type = TransactionType(type_param)
        except ValueError:
            txn_type = None
    return TransactionFilters(
        type=txn_type,
        category=request.query_params.get("category") or None,
        query=request.query_params.get("q") or None,
    )


def queue_emails(background_tasks: BackgroundTasks, outbox: list) -> None:
    if outbox:
        background_tasks.add_task(deliver, list(outbox))
        outbox.clear()


def csv_download(text: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        iter([text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def transaction_out(txn: Transaction) -> dict:
    txn_date = txn.transaction_date or txn.created_at.date()
    return {
        "id": txn.id,
        "title": txn.title,
        "amount_cents": txn.amount_cents,
        "category": txn.category,
        "type": txn.transaction_type.value,
        "date": txn_date.isoformat(),
        "origin_rule_id": txn.origin_rule_id,
        "created_at": txn.created_at.isoformat(),
    }


def rule_out(rule: RecurringRule, projection: Optional[RuleProjection] = None) -> dict:
    projection = projection or project_rule(
        RecurringRuleRecord.model_validate(rule), local_today()
    )
    return {
        "id": rule.id,
        "title": rule.title,
        "amount_cents": rule.amount_cents,
        "category": rule.category,
        "type": rule.transaction_type.value,
        "frequency": rule.frequency.value,
        "start_date": rule.start_date.isoformat(),
        "end_date": rule.end_date.isoformat() if rule.end_date else None,
        "next_due_date": rule.next_due_date.isoformat(),
        "is_active": rule.is_active,
        "days_until_due": projection.days_until_due,
        "status": projection.status.value,
        "is_overdue": projection.is_overdue,
        "is_due_today": projection.is_due_today,
        "is_due_soon": projection.is_due_soon,
        "is_due_this_week": projection.is_due_this_week,
    }


def progress_out(progress: GoalProgress) -> dict:
    data = asdict(progress)
    data["status"] = progress.status.value
    return data


def goal_out(goal: SavingsGoal, progress: Optional[GoalProgress] = None) -> dict:
    payload = {
        "id": goal.id,
        "goal_name": goal.goal_name,
        "target_amount_cents": goal.target_amount_cents,
        "saved_amount_cents": goal.saved_amount_cents,
        "target_date": goal.target_date.isoformat() if goal.target_date else None,
        "priority": goal.priority.value,
        "description": goal.description,
        "created_at": goal.created_at.isoformat(),
    }
    if progress is not None:
        payload["progress"] = progress_out(progress)
        payload["tip"] = motivational_tip(SavingsGoalRecord.model_validate(goal))
    return payload


def contribution_out(contribution: Contribution) -> dict:
    return {
        "id": contribution.id,
        "goal_id": contribution.goal_id,
        "amount_cents": contribution.amount_cents,
        "contribution_date": contribution.contribution_date.isoformat(),
        "note": contribution.note,
    }


def notification_out(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "title": notification.title,
        "message": notification.message,
        "type": notification.type.value,
        "action_url": notification.action_url,
        "read": notification.read,
        "created_at": notification.created_at.isoformat(),
    }


def profile_out(profile: Profile) -> dict:
    return {
        "display_name": profile.display_name,
        "email": profile.email,
        "currency_code": profile.currency_code,
        "monthly_budget_warning_cents": profile.monthly_budget_warning_cents,
        "monthly_budget_critical_cents": profile.monthly_budget_critical_cents,
        "email_notifications": profile.email_notifications,
    }


def metrics_out(metrics: FinancialMetrics) -> dict:
    health = metrics.health
    return {
        "window_start": metrics.window_start.isoformat(),
        "window_end": metrics.window_end.isoformat(),
        "category": metrics.category,
        "transaction_count": metrics.transaction_count,
        "income_cents": metrics.income_cents,
        "expense_cents": metrics.expense_cents,
        "net_flow_cents": metrics.net_flow_cents,
        "savings_rate": metrics.savings_rate,
        "category_breakdown": [asdict(share) for share in metrics.category_breakdown],
        "trend": [
            {
                "period": point.period,
                "income_cents": point.income_cents,
                "expense_cents": point.expense_cents,
                "net_cents": point.net_cents,
            }
            for point in metrics.trend
        ],
        "health": (
            {**asdict(health), "rating": health.rating} if health is not None else None
        ),
    }


@app.get("/api/csrf-token")
def api_csrf_token():
    return {"token": generate_csrf_token()}


# Transactions


@app.get("/api/transactions")
def api_transactions(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request) if request.query_params.get("period") else None
    filters = filters_from_request(request)
    page = max(int(request.query_params.get("page", "1")), 1)
    limit = min(max(int(request.query_params.get("limit", "50")), 1), 100)
    offset = (page - 1) * limit
    items = TransactionService(db).list(period, filters, limit=limit + 1, offset=offset)
    has_more = len(items) > limit
    return {
        "items": [transaction_out(txn) for txn in items[:limit]],
        "page": page,
        "limit": limit,
        "has_more": has_more,
    }


@app.post("/api/transactions", status_code=201, dependencies=[Depends(require_csrf)])
def api_create_transaction(
    payload: TransactionIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    service = TransactionService(db)
    try:
        txn = service.create(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    queue_emails(background_tasks, service.outbox)
    return transaction_out(txn)


@app.get("/api/transactions/export.csv")
def api_export_transactions_csv(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    transactions = TransactionService(db).all_for_period(period, filters_from_request(request))
    return csv_download(
        export_transactions(transactions),
        f"transactions_{period.start}_{period.end}.csv",
    )


@app.get("/api/transactions/export.json")
def api_export_transactions_json(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    transactions = TransactionService(db).all_for_period(period, filters_from_request(request))
    filename = f"transactions_{period.start}_{period.end}.json"
    return Response(
        content=export_transactions_json(transactions),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/api/transactions/import", dependencies=[Depends(require_csrf)])
async def api_import_transactions(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
):
    try:
        content = (await file.read()).decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=400, detail="File must be UTF-8 encoded") from exc
    service = ImportService(db)
    try:
        if (file.filename or "").lower().endswith(".csv"):
            result = service.import_csv(content)
        else:
            result = service.import_json(content)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    queue_emails(background_tasks, service.outbox)
    return {"imported": result.imported, "warnings": result.warnings}


@app.get("/api/transactions/{transaction_id}")
def api_get_transaction(transaction_id: str, db: Session = Depends(get_db)):
    try:
        return transaction_out(TransactionService(db).get(transaction_id))
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.put("/api/transactions/{transaction_id}", dependencies=[Depends(require_csrf)])
def api_update_transaction(
    transaction_id: str,
    payload: TransactionIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    service = TransactionService(db)
    try:
        txn = service.update(transaction_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    queue_emails(background_tasks, service.outbox)
    return transaction_out(txn)


@app.delete(
    "/api/transactions/{transaction_id}",
    status_code=204,
    dependencies=[Depends(require_csrf)],
)
def api_delete_transaction(transaction_id: str, db: Session = Depends(get_db)):
    try:
        TransactionService(db).delete(transaction_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


# Recurring rules


@app.get("/api/recurring")
def api_recurring(db: Session = Depends(get_db)):
    return [rule_out(rule) for rule in RecurringRuleService(db).list()]


@app.post("/api/recurring", status_code=201, dependencies=[Depends(require_csrf)])
def api_create_recurring(payload: RecurringRuleIn, db: Session = Depends(get_db)):
    try:
        rule = RecurringRuleService(db).create(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return rule_out(rule)


@app.get("/api/recurring/upcoming")
def api_recurring_upcoming(horizon_days: int = 30, db: Session = Depends(get_db)):
    pairs = RecurringRuleService(db).upcoming(local_today(), horizon_days=horizon_days)
    return [rule_out(rule, projection) for rule, projection in pairs]


@app.get("/api/recurring/statistics")
def api_recurring_statistics(db: Session = Depends(get_db)):
    return RecurringRuleService(db).statistics(local_today())


@app.get("/api/recurring/{rule_id}")
def api_get_recurring(rule_id: str, db: Session = Depends(get_db)):
    try:
        return rule_out(RecurringRuleService(db).get(rule_id))
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/recurring/{rule_id}/occurrences")
def api_recurring_occurrences(request: Request, rule_id: str, db: Session = Depends(get_db)):
    try:
        rule = RecurringRuleService(db).get(rule_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    period = period_from_request(request)
    dates = scheduled_dates(RecurringRuleRecord.model_validate(rule), period.start, period.end)
    return {"rule_id": rule.id, "dates": [d.isoformat() for d in dates]}


@app.put("/api/recurring/{rule_id}", dependencies=[Depends(require_csrf)])
def api_update_recurring(
    rule_id: str, payload: RecurringRuleIn, db: Session = Depends(get_db)
):
    try:
        rule = RecurringRuleService(db).update(rule_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return rule_out(rule)


@app.post("/api/recurring/{rule_id}/toggle", dependencies=[Depends(require_csrf)])
def api_toggle_recurring(
    rule_id: str, payload: RuleToggleIn, db: Session = Depends(get_db)
):
    try:
        rule = RecurringRuleService(db).toggle_active(rule_id, payload.is_active)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return rule_out(rule)


@app.post(
    "/api/recurring/{rule_id}/record",
    status_code=201,
    dependencies=[Depends(require_csrf)],
)
def api_record_recurring(
    rule_id: str, background_tasks: BackgroundTasks, db: Session = Depends(get_db)
):
    service = RecurringRuleService(db)
    try:
        service.get(rule_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    try:
        txn = service.record_occurrence(rule_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    queue_emails(background_tasks, service.outbox)
    return {"transaction": transaction_out(txn), "rule": rule_out(service.get(rule_id))}


@app.delete(
    "/api/recurring/{rule_id}", status_code=204, dependencies=[Depends(require_csrf)]
)
def api_delete_recurring(rule_id: str, db: Session = Depends(get_db)):
    try:
        RecurringRuleService(db).delete(rule_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


# Savings goals


@app.get("/api/savings")
def api_savings(db: Session = Depends(get_db)):
    return [
        goal_out(goal, progress)
        for goal, progress in SavingsGoalService(db).progress(local_today())
    ]


@app.post("/api/savings", status_code=201, dependencies=[Depends(require_csrf)])
def api_create_goal(payload: SavingsGoalIn, db: Session = Depends(get_db)):
    goal = SavingsGoalService(db).create(payload)
    return goal_out(goal)


@app.get("/api/savings/progress")
def api_savings_progress(db: Session = Depends(get_db)):
    return [
        progress_out(progress)
        for _goal, progress in SavingsGoalService(db).progress(local_today())
    ]


@app.get("/api/savings/export.csv")
def api_export_goals(db: Session = Depends(get_db)):
    rows = SavingsGoalService(db).progress(local_today())
    return csv_download(export_goals(rows), f"savings_goals_{local_today()}.csv")


@app.get("/api/savings/{goal_id}")
def api_get_goal(goal_id: str, db: Session = Depends(get_db)):
    service = SavingsGoalService(db)
    try:
        goal = service.get(goal_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return goal_out(goal, evaluate_goal(SavingsGoalRecord.model_validate(goal), local_today()))


@app.put("/api/savings/{goal_id}", dependencies=[Depends(require_csrf)])
def api_update_goal(goal_id: str, payload: SavingsGoalIn, db: Session = Depends(get_db)):
    try:
        goal = SavingsGoalService(db).update(goal_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return goal_out(goal)


@app.delete("/api/savings/{goal_id}", status_code=204, dependencies=[Depends(require_csrf)])
def api_delete_goal(goal_id: str, db: Session = Depends(get_db)):
    try:
        SavingsGoalService(db).delete(goal_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@app.get("/api/savings/{goal_id}/contributions")
def api_goal_contributions(goal_id: str, db: Session = Depends(get_db)):
    try:
        items = SavingsGoalService(db).contributions(goal_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return [contribution_out(item) for item in items]


@app.post(
    "/api/savings/{goal_id}/contributions",
    status_code=201,
    dependencies=[Depends(require_csrf)],
)
def api_add_contribution(
    goal_id: str, payload: ContributionIn, db: Session = Depends(get_db)
):
    service = SavingsGoalService(db)
    try:
        contribution = service.add_contribution(goal_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {
        "contribution": contribution_out(contribution),
        "goal": goal_out(service.get(goal_id)),
    }


@app.get("/api/savings/{goal_id}/reconcile")
def api_reconcile_goal(goal_id: str, db: Session = Depends(get_db)):
    try:
        return SavingsGoalService(db).reconcile(goal_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


# Notifications


@app.get("/api/notifications")
def api_notifications(
    unread_only: bool = False, limit: int = 50, db: Session = Depends(get_db)
):
    limit = min(max(limit, 1), 100)
    items = NotificationService(db).list(limit=limit, unread_only=unread_only)
    return [notification_out(item) for item in items]


@app.get("/api/notifications/unread-count")
def api_notifications_unread(db: Session = Depends(get_db)):
    return {"count": NotificationService(db).unread_count()}


@app.post("/api/notifications/read-all", dependencies=[Depends(require_csrf)])
def api_notifications_read_all(db: Session = Depends(get_db)):
    return {"updated": NotificationService(db).mark_all_read()}


@app.post("/api/notifications/check", dependencies=[Depends(require_csrf)])
def api_notifications_check(background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    service = NotificationService(db)
    created = service.run_all_checks(local_today())
    queue_emails(background_tasks, service.outbox)
    return {"created": created}


@app.post(
    "/api/notifications/{notification_id}/read", dependencies=[Depends(require_csrf)]
)
def api_notification_read(notification_id: str, db: Session = Depends(get_db)):
    try:
        notification = NotificationService(db).mark_read(notification_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return notification_out(notification)


@app.delete(
    "/api/notifications/{notification_id}",
    status_code=204,
    dependencies=[Depends(require_csrf)],
)
def api_notification_delete(notification_id: str, db: Session = Depends(get_db)):
    try:
        NotificationService(db).delete(notification_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


# Analytics


@app.get("/api/analytics")
def api_analytics(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    category = request.query_params.get("category") or None
    return metrics_out(MetricsService(db).analytics(period, category))


@app.get("/api/analytics/export.csv")
def api_analytics_export(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    category = request.query_params.get("category") or None
    metrics = MetricsService(db).analytics(period, category)
    return csv_download(
        export_trend(metrics.trend),
        f"analytics_{metrics.window_start}_{metrics.window_end}.csv",
    )


# Profile


@app.get("/api/profile")
def api_profile(db: Session = Depends(get_db)):
    return profile_out(ProfileService(db).get_or_create())


@app.put("/api/profile", dependencies=[Depends(require_csrf)])
def api_update_profile(payload: ProfileIn, db: Session = Depends(get_db)):
    return profile_out(ProfileService(db).update(payload))
