from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import date
from pathlib import Path
from typing import Optional
from urllib.error import URLError
from urllib.request import Request, urlopen

from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import get_settings

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates" / "email"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
)


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str
    text: Optional[str] = None


def _amount(cents: int) -> str:
    return f"{cents / 100:,.2f}"


def recurring_bill_reminder(
    to: str, title: str, amount_cents: int, due_date: date
) -> EmailMessage:
    context = {
        "title": title,
        "amount": _amount(amount_cents),
        "due_date": due_date.strftime("%B %d, %Y"),
    }
    return EmailMessage(
        to=to,
        subject=f"Reminder: {title} is due soon",
        html=_env.get_template("recurring_reminder.html").render(**context),
        text=_env.get_template("recurring_reminder.txt").render(**context),
    )


def budget_warning(to: str, spent_cents: int, limit_cents: int) -> EmailMessage:
    context = {
        "spent": _amount(spent_cents),
        "limit": _amount(limit_cents),
        "exceeded": spent_cents >= limit_cents,
    }
    return EmailMessage(
        to=to,
        subject="Budget alert for this month",
        html=_env.get_template("budget_warning.html").render(**context),
        text=_env.get_template("budget_warning.txt").render(**context),
    )


class EmailService:
    def __init__(self) -> None:
        self.settings = get_settings()

    def send(self, message: EmailMessage) -> bool:
        """Deliver ``message``; failures are logged and reported as False, never raised."""
        if not self.settings.email_configured:
            logger.warning("email_skipped: transport not configured")
            return False
        try:
            _post_json(
                self.settings.email_endpoint,
                asdict(message),
                api_key=self.settings.email_api_key,
                timeout=self.settings.email_timeout_secs,
            )
        except Exception:
            logger.exception(f"email_failed: to={message.to} subject={message.subject!r}")
            return False
        logger.info(f"email_sent: to={message.to} subject={message.subject!r}")
        return True


def deliver(messages: list[EmailMessage], service: Optional[EmailService] = None) -> int:
    """Send queued messages one by one; returns how many went out."""
    if not messages:
        return 0
    service = service or EmailService()
    return sum(1 for message in messages if service.send(message))


def _post_json(url: str, payload: dict, *, api_key: str, timeout: float) -> None:
    body = json.dumps(payload).encode("utf-8")
    req = Request(
        url,
        data=body,
        method="POST",
        headers={
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        },
    )
    try:
        with urlopen(req, timeout=timeout) as resp:
            status = getattr(resp, "status", 200)
            if status >= 400:
                raise RuntimeError(f"Email endpoint returned HTTP {status}")
    except (URLError, TimeoutError) as exc:
        raise RuntimeError(f"Failed to reach email endpoint {url}") from exc
