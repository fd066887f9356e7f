"""
Integration tests for transaction handling in the workflow orchestrator
"""
from decimal import Decimal

import pytest

from app.db.session import atomic
from app.exceptions import ConflictError, InsufficientStockError
from app.models import Material, MaterialCategory, MaterialUsage, Role
from app.services.orchestrator import WorkflowOrchestrator


class TestAtomic:

    def test_commits_on_success(self, db_session, session_factory):
        with atomic(db_session):
            db_session.add(Material(code="MAT-T-1", name="Tile", category=MaterialCategory.FINISHING,
                                    unit="m2", unit_price=Decimal("9.00")))

        other = session_factory()
        try:
            assert other.query(Material).filter(Material.code == "MAT-T-1").count() == 1
        finally:
            other.close()

    def test_unique_violation_becomes_conflict(self, db_session, cement):
        with pytest.raises(ConflictError):
            with atomic(db_session):
                db_session.add(Material(code=cement.code, name="Copy", unit="sack", unit_price=Decimal("1")))

        assert db_session.query(Material).count() == 1

    def test_domain_error_rolls_back_and_propagates(self, db_session, cement):
        with pytest.raises(InsufficientStockError):
            with atomic(db_session):
                cement.stock = Decimal("1")
                db_session.flush()
                raise InsufficientStockError(cement.code, Decimal("5"), Decimal("1"))

        db_session.refresh(cement)
        assert cement.stock == Decimal("100")


class TestAfterCommitHook:

    def test_hook_runs_once_per_success(self, db_session, callers, project, cement):
        calls = []
        orchestrator = WorkflowOrchestrator(db_session, on_commit=lambda: calls.append("commit"))

        orchestrator.record_material_usage(callers[Role.FIELD_TEAM], project.id, cement.id, Decimal("1"))
        with pytest.raises(InsufficientStockError):
            orchestrator.record_material_usage(callers[Role.FIELD_TEAM], project.id, cement.id, Decimal("1000"))

        assert calls == ["commit"]

    def test_hook_failure_is_swallowed(self, db_session, callers, project, cement):
        def explode():
            raise RuntimeError("boom")

        orchestrator = WorkflowOrchestrator(db_session, on_commit=explode)
        usage = orchestrator.record_material_usage(callers[Role.FIELD_TEAM], project.id, cement.id, Decimal("2"))

        assert db_session.query(MaterialUsage).filter(MaterialUsage.id == usage.id).count() == 1


class TestAuditTrail:

    def test_events_are_audited(self, db_session, callers, project, cement, monkeypatch):
        events = []
        monkeypatch.setattr(
            "app.services.orchestrator.audit_log",
            lambda event, **kwargs: events.append((event, kwargs)),
        )
        orchestrator = WorkflowOrchestrator(db_session, ip_address="10.0.0.8")
        field = callers[Role.FIELD_TEAM]

        pr = orchestrator.create_pr(field, project_id=project.id, title="Sand", items=[{"material_id": cement.id, "quantity": 1}])
        orchestrator.approve_pr(callers[Role.PURCHASING], pr.id, "Purchasing")
        orchestrator.reject_pr(callers[Role.COST_CONTROL], pr.id, "Cost Control", "Over budget")
        orchestrator.record_material_usage(field, project.id, cement.id, Decimal("3"))

        assert [e for e, _ in events] == [
            "PR_CREATED", "PR_STAGE_APPROVED", "PR_REJECTED", "MATERIAL_USAGE_RECORDED",
        ]
        assert events[0][1]["user_id"] == field.id
        assert events[0][1]["resource_type"] == "purchase_request"
        assert events[0][1]["ip_address"] == "10.0.0.8"

    def test_failed_operation_is_not_audited(self, db_session, callers, project, cement, monkeypatch):
        events = []
        monkeypatch.setattr("app.services.orchestrator.audit_log", lambda event, **kwargs: events.append(event))

        with pytest.raises(InsufficientStockError):
            WorkflowOrchestrator(db_session).record_material_usage(
                callers[Role.FIELD_TEAM], project.id, cement.id, Decimal("101"),
            )
        assert events == []
