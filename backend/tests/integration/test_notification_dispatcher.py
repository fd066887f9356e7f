"""
Integration tests for the notification outbox, dispatcher and inbox
"""
from decimal import Decimal

import pytest

from app.models import Notification, NotificationType, OutboxNotification, OutboxStatus, Role
from app.services import notification_service
from app.services.notification_service import LoggingNotifier, NotificationDispatcher
from app.services.orchestrator import WorkflowOrchestrator, dispatch_outbox
from app.workers.notification_dispatcher import DispatcherWorker


class FailingNotifier:
    def __init__(self, db=None):
        self.db = db

    def notify(self, user_id, title, message, type, related_id):
        raise RuntimeError("mail relay down")


@pytest.fixture
def queued(db_session, users):
    """Two pending rows for the purchasing user"""
    user_id = users[Role.PURCHASING].id
    notification_service.enqueue(db_session, user_id, "First", "one", NotificationType.SYSTEM)
    notification_service.enqueue(db_session, user_id, "Second", "two", NotificationType.APPROVAL_REQUEST, related_id=7)
    db_session.commit()
    return user_id


class TestEnqueue:

    def test_role_fan_out(self, db_session, users):
        count = notification_service.enqueue_for_roles(
            db_session, [Role.COST_CONTROL, Role.GENERAL_MANAGER], "Heads up", "Budget review",
        )
        db_session.commit()

        assert count == 2
        rows = db_session.query(OutboxNotification).order_by(OutboxNotification.id).all()
        assert [r.user_id for r in rows] == [users[Role.COST_CONTROL].id, users[Role.GENERAL_MANAGER].id]
        assert all(r.status == OutboxStatus.PENDING for r in rows)

    def test_no_recipients(self, db_session):
        assert notification_service.enqueue_for_role(db_session, Role.DIRECTOR, "x", "y") == 0

    def test_rolled_back_work_drops_notifications(self, db_session, users):
        notification_service.enqueue(db_session, users[Role.MANAGER].id, "Lost", "never sent")
        db_session.rollback()
        assert db_session.query(OutboxNotification).count() == 0


class TestDispatcher:

    def test_delivers_to_inbox(self, db_session, session_factory, queued):
        sent, failed = NotificationDispatcher(session_factory).dispatch_pending()

        assert (sent, failed) == (2, 0)
        inbox = notification_service.list_inbox(db_session, queued)
        assert sorted(n.title for n in inbox) == ["First", "Second"]
        rows = db_session.query(OutboxNotification).all()
        assert all(r.status == OutboxStatus.SENT and r.attempts == 1 and r.sent_at for r in rows)

    def test_second_pass_sends_nothing(self, session_factory, queued):
        dispatcher = NotificationDispatcher(session_factory)
        dispatcher.dispatch_pending()
        assert dispatcher.dispatch_pending() == (0, 0)

    def test_batch_size_limits_pass(self, db_session, session_factory, queued):
        assert NotificationDispatcher(session_factory).dispatch_pending(batch_size=1) == (1, 0)
        assert db_session.query(OutboxNotification).filter(
            OutboxNotification.status == OutboxStatus.PENDING
        ).count() == 1

    def test_failures_retry_then_give_up(self, db_session, session_factory, queued):
        dispatcher = NotificationDispatcher(session_factory, notifier_factory=FailingNotifier, max_attempts=2)

        assert dispatcher.dispatch_pending() == (0, 2)
        rows = db_session.query(OutboxNotification).all()
        assert all(r.status == OutboxStatus.PENDING and r.attempts == 1 for r in rows)
        assert "mail relay down" in rows[0].last_error

        assert dispatcher.dispatch_pending() == (0, 2)
        db_session.expire_all()
        rows = db_session.query(OutboxNotification).all()
        assert all(r.status == OutboxStatus.FAILED and r.attempts == 2 for r in rows)

        assert dispatcher.dispatch_pending() == (0, 0)
        assert db_session.query(Notification).count() == 0

    def test_logging_notifier_marks_sent_without_inbox(self, db_session, session_factory, queued):
        sent, _ = NotificationDispatcher(session_factory, notifier_factory=LoggingNotifier).dispatch_pending()

        assert sent == 2
        assert db_session.query(Notification).count() == 0

    def test_worker_single_pass(self, session_factory, queued):
        worker = DispatcherWorker(NotificationDispatcher(session_factory), interval=1, batch_size=10)
        assert worker.run_once() == 2

        worker.stop()
        assert worker.running is False


class TestAfterCommitDispatch:

    def test_orchestrator_delivers_after_commit(self, db_session, session_factory, callers, users, project, cement):
        dispatcher = NotificationDispatcher(session_factory)
        orchestrator = WorkflowOrchestrator(db_session, on_commit=lambda: dispatch_outbox(dispatcher))

        pr = orchestrator.create_pr(
            callers[Role.FIELD_TEAM], project_id=project.id, title="Rebar",
            items=[{"material_id": cement.id, "quantity": Decimal("4")}],
        )

        inbox = notification_service.list_inbox(db_session, users[Role.PURCHASING].id)
        assert [n.related_id for n in inbox] == [pr.id]
        assert inbox[0].type == NotificationType.APPROVAL_REQUEST

    def test_dispatch_errors_do_not_fail_the_operation(self, db_session, callers, project, cement):
        class BrokenDispatcher:
            def dispatch_pending(self):
                raise RuntimeError("database unavailable")

        orchestrator = WorkflowOrchestrator(db_session, on_commit=lambda: dispatch_outbox(BrokenDispatcher()))
        usage = orchestrator.record_material_usage(callers[Role.FIELD_TEAM], project.id, cement.id, Decimal("1"))

        assert usage.id is not None


class TestInbox:

    @pytest.fixture
    def delivered(self, session_factory, queued):
        NotificationDispatcher(session_factory).dispatch_pending()
        return queued

    def test_unread_and_mark_read(self, db_session, delivered):
        assert notification_service.unread_count(db_session, delivered) == 2

        first = notification_service.list_inbox(db_session, delivered)[0]
        notification_service.mark_read(db_session, delivered, first.id)
        db_session.commit()

        assert notification_service.unread_count(db_session, delivered) == 1
        assert [n.id for n in notification_service.list_inbox(db_session, delivered, "read")] == [first.id]
        assert len(notification_service.list_inbox(db_session, delivered, "unread")) == 1

    def test_mark_read_is_scoped_to_owner(self, db_session, users, delivered):
        first = notification_service.list_inbox(db_session, delivered)[0]
        assert notification_service.mark_read(db_session, users[Role.DIRECTOR].id, first.id) is None

    def test_mark_all_read(self, db_session, delivered):
        assert notification_service.mark_all_read(db_session, delivered) == 2
        db_session.commit()
        assert notification_service.unread_count(db_session, delivered) == 0
