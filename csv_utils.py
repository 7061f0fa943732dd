import csv
import json
import logging
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from io import StringIO
from typing import Iterable, Sequence

from pydantic import ValidationError

from goals import GoalProgress
from metrics import TrendPoint
from models import SavingsGoal, Transaction, TransactionType
from schemas import UNCATEGORIZED, ImportedTransaction

logger = logging.getLogger(__name__)

TRANSACTION_COLUMNS = ["Date", "Type", "Title", "Category", "Amount"]
GOAL_COLUMNS = ["Goal", "Priority", "Target", "Saved", "Progress", "Target Date", "Status"]
TREND_COLUMNS = ["Date", "Income", "Expenses", "Net"]


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def format_cents(cents: int) -> str:
    return f"{cents / 100:.2f}"


def parse_date(value: str):
    value = value.strip()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return datetime.strptime(value, "%d.%m.%Y").date()


def parse_amount(value: str) -> int:
    clean = value.strip().replace("₹", "").replace("$", "").replace(" ", "")
    clean = clean.replace(",", "")
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents < 0:
        raise ValueError("Amount must be positive")
    return cents


def amount_to_cents(amount: float) -> int:
    return int(
        (Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )


def export_transactions(transactions: Sequence[Transaction]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(TRANSACTION_COLUMNS)
    for txn in transactions:
        txn_date = txn.transaction_date or txn.created_at.date()
        writer.writerow(
            [
                txn_date.isoformat(),
                txn.transaction_type.value,
                sanitize_csv_value(txn.title or ""),
                sanitize_csv_value(txn.category or UNCATEGORIZED),
                format_cents(txn.amount_cents),
            ]
        )
    return output.getvalue()


def export_goals(rows: Iterable[tuple[SavingsGoal, GoalProgress]]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(GOAL_COLUMNS)
    for goal, progress in rows:
        writer.writerow(
            [
                sanitize_csv_value(goal.goal_name),
                goal.priority.value,
                format_cents(goal.target_amount_cents),
                format_cents(goal.saved_amount_cents),
                f"{progress.percent:.1f}%",
                goal.target_date.isoformat() if goal.target_date else "",
                progress.status.value,
            ]
        )
    return output.getvalue()


def export_trend(points: Iterable[TrendPoint]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(TREND_COLUMNS)
    for point in points:
        writer.writerow(
            [
                point.period,
                format_cents(point.income_cents),
                format_cents(point.expense_cents),
                format_cents(point.net_cents),
            ]
        )
    return output.getvalue()


def export_transactions_json(transactions: Sequence[Transaction]) -> str:
    payload = [
        {
            "id": txn.id,
            "title": txn.title,
            "amount": txn.amount_cents / 100,
            "category": txn.category or UNCATEGORIZED,
            "type": txn.transaction_type.value,
            "date": (txn.transaction_date or txn.created_at.date()).isoformat(),
        }
        for txn in transactions
    ]
    return json.dumps(payload, indent=2)


def parse_transactions_json(content: str) -> tuple[list[ImportedTransaction], list[str]]:
    """Decode a JSON export. Invalid items are skipped and reported, not fatal."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ValueError("Invalid JSON file format") from exc
    if not isinstance(data, list):
        raise ValueError("File must contain an array of transactions")

    rows: list[ImportedTransaction] = []
    warnings: list[str] = []
    for idx, item in enumerate(data):
        if not isinstance(item, dict):
            warnings.append(f"Skipping item {idx}: not an object")
            continue
        try:
            rows.append(ImportedTransaction.model_validate(item))
        except ValidationError as exc:
            fields = ", ".join(
                str(err["loc"][0]) if err["loc"] else "item" for err in exc.errors()
            )
            warnings.append(f"Skipping item {idx}: invalid {fields}")
    for message in warnings:
        logger.warning(f"json_import: {message}")
    return rows, warnings


def parse_csv(content: str) -> tuple[list[ImportedTransaction], list[str]]:
    reader = csv.DictReader(StringIO(content))
    rows: list[ImportedTransaction] = []
    warnings: list[str] = []
    for idx, raw in enumerate(reader, start=1):
        try:
            date_value = parse_date((raw.get("Date") or "").strip())
            type_value = TransactionType((raw.get("Type") or "").strip().lower())
            cents = parse_amount(raw.get("Amount") or "0")
            title = (raw.get("Title") or "").strip() or None
            rows.append(
                ImportedTransaction(
                    title=title,
                    amount=cents / 100,
                    category=(raw.get("Category") or "").strip() or UNCATEGORIZED,
                    type=type_value,
                    date=date_value.isoformat(),
                )
            )
        except (ValueError, ValidationError) as exc:
            warnings.append(f"Row {idx}: {exc}")
    for message in warnings:
        logger.warning(f"csv_import: {message}")
    return rows, warnings
