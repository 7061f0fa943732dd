from datetime import date
from types import SimpleNamespace

import email_service
from email_service import EmailService, budget_warning, deliver, recurring_bill_reminder


def _configured(service: EmailService) -> EmailService:
    service.settings = SimpleNamespace(
        email_configured=True,
        email_endpoint="https://mail.example/send",
        email_api_key="key",
        email_timeout_secs=1,
    )
    return service


def test_reminder_template_renders_details():
    message = recurring_bill_reminder("me@example.com", "Rent <flat>", 1500000, date(2024, 6, 1))
    assert message.subject == "Reminder: Rent <flat> is due soon"
    assert "15,000.00" in message.html
    assert "June 01, 2024" in message.html
    assert "Rent &lt;flat&gt;" in message.html
    assert "Rent <flat>" in message.text


def test_budget_template_marks_exceeded():
    message = budget_warning("me@example.com", 4500000, 4000000)
    assert "45,000.00" in message.text
    assert "40,000.00" in message.text


def test_unconfigured_transport_is_skipped(monkeypatch):
    calls = []
    monkeypatch.setattr(email_service, "_post_json", lambda *a, **k: calls.append(a))
    service = EmailService()
    service.settings = SimpleNamespace(email_configured=False)
    assert service.send(budget_warning("me@example.com", 1, 2)) is False
    assert calls == []


def test_transport_failure_is_reported_not_raised(monkeypatch):
    def fail(*args, **kwargs):
        raise RuntimeError("connection refused")

    monkeypatch.setattr(email_service, "_post_json", fail)
    service = _configured(EmailService())
    assert service.send(budget_warning("me@example.com", 1, 2)) is False


def test_successful_send_posts_message(monkeypatch):
    sent = {}

    def capture(url, payload, *, api_key, timeout):
        sent.update(url=url, payload=payload, api_key=api_key, timeout=timeout)

    monkeypatch.setattr(email_service, "_post_json", capture)
    service = _configured(EmailService())
    assert service.send(budget_warning("me@example.com", 1, 2)) is True
    assert sent["url"] == "https://mail.example/send"
    assert sent["payload"]["to"] == "me@example.com"
    assert sent["api_key"] == "key"


def test_deliver_counts_successful_sends(monkeypatch):
    outcomes = iter([True, False])
    monkeypatch.setattr(EmailService, "send", lambda self, message: next(outcomes))
    messages = [budget_warning("a@example.com", 1, 2), budget_warning("b@example.com", 1, 2)]
    assert deliver(messages) == 1
    assert deliver([]) == 0
