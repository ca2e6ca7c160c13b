"""Unit tests for FlowService.

Tests cover:
- Creation and validation
- Updates, including step replacement
- Toggle and cascading delete
- Dry-run simulation
"""

import pytest

from echodesk_core.domain.models import AutoReplyExecution, ExecutionStep, FlowStep
from echodesk_core.domain.services.executions import ExecutionLedger
from echodesk_core.domain.services.flows import (
    FlowNotFoundError,
    FlowService,
    FlowValidationError,
)
from tests.factories import NOW, create_execution, create_message, create_user, step


@pytest.fixture
def user(db_session):
    return create_user(db_session)


@pytest.fixture
def service(db_session):
    return FlowService(db_session)


def make_flow(service, user, **kwargs):
    values = {
        "user_id": user.id,
        "name": "Welcome",
        "platform": "Telegram",
        "steps": [step(1, "Hi"), step(2, "Bye", is_end_step=True)],
        "trigger_keywords": ["hello"],
    }
    values.update(kwargs)
    return service.create_flow(**values)


class TestCreateFlow:
    """create_flow."""

    def test_creates_flow_with_sorted_steps(self, service, user):
        flow = make_flow(
            service,
            user,
            steps=[step(2, "second"), step(1, "first")],
            trigger_keywords=[" hello ", "", "price"],
        )

        assert flow.id is not None
        assert [s.step_number for s in flow.steps] == [1, 2]
        assert flow.trigger_keywords == ["hello", "price"]
        assert flow.total_triggers == 0
        assert flow.total_replies == 0

    def test_rejects_duplicate_step_numbers(self, service, user):
        with pytest.raises(FlowValidationError, match="Duplicate step_number"):
            make_flow(service, user, steps=[step(1, "a"), step(1, "b")])

    def test_rejects_unknown_condition(self, service, user):
        with pytest.raises(FlowValidationError):
            make_flow(service, user, steps=[step(1, "a", condition="moon_phase")])

    def test_rejects_empty_reply(self, service, user):
        with pytest.raises(FlowValidationError):
            make_flow(service, user, steps=[step(1, "   ")])

    def test_rejects_invalid_platform(self, service, user):
        with pytest.raises(FlowValidationError):
            make_flow(service, user, platform="MySpace")

    def test_rejects_invalid_trigger_type(self, service, user):
        with pytest.raises(FlowValidationError):
            make_flow(service, user, trigger_type="weather")

    def test_rejects_invalid_working_hours(self, service, user):
        with pytest.raises(FlowValidationError):
            make_flow(service, user, working_hours={"enabled": True, "startTime": "9am"})

        with pytest.raises(FlowValidationError, match="Unknown timezone"):
            make_flow(service, user, working_hours={"enabled": True, "timezone": "Nowhere/City"})

    def test_rejects_blank_name(self, service, user):
        with pytest.raises(FlowValidationError):
            make_flow(service, user, name="  ")

    def test_rejects_next_step_to_missing_step(self, service, user):
        with pytest.raises(FlowValidationError, match="next_step 5"):
            make_flow(service, user, steps=[step(1, "a", next_step=5), step(2, "b", is_end_step=True)])

    @pytest.mark.parametrize(
        "steps",
        [
            [step(1, "again", next_step=1)],
            [step(1, "a", next_step=2), step(2, "b", next_step=1)],
            [
                step(1, "a"),
                step(2, "reminder", step_type="delayed_reply", delay=60, next_step=1),
            ],
            [
                step(1, "a"),
                step(2, "b", is_end_step=True, condition="contains_keyword", condition_value="x", next_step=1),
            ],
        ],
    )
    def test_rejects_steps_that_loop(self, service, user, steps):
        with pytest.raises(FlowValidationError, match="loop back"):
            make_flow(service, user, steps=steps)

    def test_end_step_may_point_backwards(self, service, user):
        flow = make_flow(
            service,
            user,
            steps=[step(1, "a", next_step=2), step(2, "b", is_end_step=True, next_step=1)],
        )

        assert [s.next_step for s in flow.steps] == [2, 1]


class TestReadUpdate:
    """get, list, update, toggle."""

    def test_other_users_flow_is_not_found(self, db_session, service, user):
        flow = make_flow(service, user)
        stranger = create_user(db_session, username="stranger")

        with pytest.raises(FlowNotFoundError):
            service.get_flow(flow.id, stranger.id)

    def test_list_filters_by_platform(self, service, user):
        make_flow(service, user, name="tg")
        make_flow(service, user, name="wa", platform="WhatsApp")

        assert [f.name for f in service.list_flows(user.id, platform="WhatsApp")] == ["wa"]
        assert len(service.list_flows(user.id)) == 2

    def test_update_fields(self, service, user):
        flow = make_flow(service, user)

        updated = service.update_flow(
            flow.id,
            user.id,
            {"name": "  Renamed ", "max_replies_per_user": 5, "trigger_type": "sender", "trigger_value": "42"},
        )

        assert updated.name == "Renamed"
        assert updated.max_replies_per_user == 5
        assert updated.trigger_type == "sender"
        assert updated.trigger_value == "42"

    def test_update_replaces_steps(self, db_session, service, user):
        flow = make_flow(service, user)

        service.update_flow(
            flow.id,
            user.id,
            {},
            steps=[step(1, "new first"), step(2, "new second"), step(3, "new third")],
        )

        assert [s.reply_content for s in flow.steps] == ["new first", "new second", "new third"]
        assert db_session.query(FlowStep).filter(FlowStep.flow_id == flow.id).count() == 3

    def test_update_rejects_unknown_fields(self, service, user):
        flow = make_flow(service, user)

        with pytest.raises(FlowValidationError, match="Unknown fields"):
            service.update_flow(flow.id, user.id, {"total_replies": 100})

    def test_toggle(self, service, user):
        flow = make_flow(service, user)

        assert service.toggle_flow(flow.id, user.id).is_active is False
        assert service.toggle_flow(flow.id, user.id).is_active is True


class TestDeleteFlow:
    """Cascading delete."""

    def test_delete_removes_executions_and_step_log(self, db_session, service, user):
        flow = make_flow(service, user)
        message = create_message(db_session, user)
        first = create_execution(db_session, flow, message)
        create_execution(db_session, flow, message, status="completed")
        ExecutionLedger(db_session).record_step(first, 1, NOW, "Hi", success=True, reply_message_id="r")

        deleted = service.delete_flow(flow.id, user.id)

        assert deleted == 2
        assert db_session.query(AutoReplyExecution).count() == 0
        assert db_session.query(ExecutionStep).count() == 0
        assert db_session.query(FlowStep).count() == 0
        with pytest.raises(FlowNotFoundError):
            service.get_flow(flow.id, user.id)


class TestSimulate:
    """Dry runs."""

    def test_reports_trigger_and_step_timeline(self, service, user):
        flow = make_flow(
            service,
            user,
            steps=[
                step(1, "Hi"),
                step(2, "Pricing", step_type="delayed_reply", delay=15, condition="contains_keyword", condition_value="price"),
                step(3, "Follow up", step_type="delayed_reply", delay=60),
                step(4, "Bye", is_end_step=True),
            ],
        )

        result = service.simulate(flow.id, user.id, test_message="hello, what's the price?")

        assert result["would_trigger"] is True
        assert [s["step_number"] for s in result["steps"]] == [1, 2, 3, 4]
        assert [s["would_execute"] for s in result["steps"]] == [True, True, True, True]
        assert [s["offset_minutes"] for s in result["steps"]] == [0, 0, 15, 75]

    def test_skipped_step_adds_no_delay(self, service, user):
        flow = make_flow(
            service,
            user,
            steps=[
                step(1, "Pricing", step_type="delayed_reply", delay=15, condition="contains_keyword", condition_value="price"),
                step(2, "Bye", is_end_step=True),
            ],
        )

        result = service.simulate(flow.id, user.id, test_message="hello")

        assert [s["would_execute"] for s in result["steps"]] == [False, True]
        assert [s["offset_minutes"] for s in result["steps"]] == [0, 0]

    def test_non_matching_message(self, service, user):
        flow = make_flow(service, user, trigger_keywords=["refund"])

        assert service.simulate(flow.id, user.id, test_message="hi")["would_trigger"] is False

    def test_simulation_writes_nothing(self, db_session, service, user):
        flow = make_flow(service, user)

        service.simulate(flow.id, user.id, test_message="hello")

        assert db_session.query(AutoReplyExecution).count() == 0
