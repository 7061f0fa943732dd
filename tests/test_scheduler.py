from contextlib import contextmanager
from datetime import timedelta

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

import email_service
import scheduler
from database import Base
from models import Frequency, Notification, Profile, RecurringRule, TransactionType
from recurrence import local_today


def _patch_sessions(monkeypatch, engine) -> None:
    @contextmanager
    def scope():
        with Session(engine) as session:
            yield session
            session.commit()

    monkeypatch.setattr(scheduler, "session_scope", scope)


def test_daily_run_notifies_without_advancing_rules(monkeypatch) -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    _patch_sessions(monkeypatch, engine)
    due = local_today() + timedelta(days=1)

    with Session(engine) as session:
        session.add(Profile(user_id=1, currency_code="INR"))
        session.add(
            RecurringRule(
                user_id=1,
                title="Phone",
                amount_cents=59900,
                transaction_type=TransactionType.expense,
                frequency=Frequency.monthly,
                start_date=due - timedelta(days=31),
                next_due_date=due,
                is_active=True,
            )
        )
        session.commit()

    assert scheduler.run_notification_checks("test") == 2
    assert scheduler.run_notification_checks("test") == 0

    with Session(engine) as session:
        rule = session.scalars(select(RecurringRule)).one()
        assert rule.next_due_date == due
        titles = sorted(n.title for n in session.scalars(select(Notification)))
        assert titles == ["Upcoming Recurring Bill", "Upcoming Scheduled Transactions"]


def test_failing_profile_does_not_stop_the_run(monkeypatch) -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    _patch_sessions(monkeypatch, engine)

    def boom(self, today=None):
        raise RuntimeError("boom")

    monkeypatch.setattr(scheduler.NotificationService, "run_all_checks", boom)
    assert scheduler.run_notification_checks("test") == 0


def test_daily_run_delivers_queued_reminders(monkeypatch) -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    _patch_sessions(monkeypatch, engine)
    sent = []
    monkeypatch.setattr(
        email_service.EmailService, "send", lambda self, message: sent.append(message) or True
    )
    due = local_today() + timedelta(days=2)

    with Session(engine) as session:
        session.add(
            Profile(
                user_id=1,
                currency_code="INR",
                email="me@example.com",
                email_notifications=True,
            )
        )
        session.add(
            RecurringRule(
                user_id=1,
                title="Insurance",
                amount_cents=250000,
                transaction_type=TransactionType.expense,
                frequency=Frequency.monthly,
                start_date=due - timedelta(days=30),
                next_due_date=due,
                is_active=True,
            )
        )
        session.commit()

    scheduler.run_notification_checks("test")
    assert [m.subject for m in sent] == ["Reminder: Insurance is due soon"]
