"""Tests for repository operations and optimistic locking."""

import pytest
from datetime import datetime, timedelta
from sqlalchemy.exc import IntegrityError

from cadence.database.escalation_repository import EscalationStateRepository
from cadence.database.instance_repository import TaskInstanceRepository
from cadence.database.template_repository import TaskTemplateRepository
from cadence.errors import ConcurrentModification
from cadence.models.escalation import EscalationLevel, EscalationState
from cadence.models.recurrence import RecurrenceRule
from cadence.models.task import TaskStatus
from cadence.models.task_factory import create_instance_from_template, create_template_base

NOW = datetime(2026, 3, 4, 9, 0)


@pytest.fixture
def template_repo(db_session):
    return TaskTemplateRepository(db_session)


@pytest.fixture
def instance_repo(db_session):
    return TaskInstanceRepository(db_session)


@pytest.fixture
def escalation_repo(db_session):
    return EscalationStateRepository(db_session)


@pytest.fixture
def template(template_repo, owner_id, list_id):
    rule = RecurrenceRule.parse({"pattern": "daily", "time_of_day": "08:00"})
    return template_repo.create(create_template_base(owner_id, list_id, "Journal", rule, now=NOW))


def _instance(instance_repo, template, number, due_at, status=TaskStatus.PENDING):
    instance = create_instance_from_template(template, number, due_at, NOW)
    return instance_repo.create(instance.model_copy(update={"status": status}))


class TestTemplateRepository:
    def test_create_and_get(self, template_repo, template):
        loaded = template_repo.get(template.id)
        assert loaded.title == "Journal"
        assert loaded.rule.time_of_day.hour == 8

    def test_find_by_key(self, template_repo, template, owner_id, list_id):
        assert template_repo.find_by_key(owner_id, list_id, "Journal").id == template.id
        assert template_repo.find_by_key(owner_id, list_id, "Other") is None

    def test_get_nonexistent(self, template_repo):
        assert template_repo.get("nonexistent-id") is None


class TestInstanceRepository:
    def test_list_overdue_excludes_done_and_future(self, instance_repo, template):
        late = _instance(instance_repo, template, 1, NOW - timedelta(hours=2))
        later = _instance(instance_repo, template, 2, NOW - timedelta(hours=1))
        _instance(instance_repo, template, 3, NOW - timedelta(hours=3), status=TaskStatus.DONE)
        _instance(instance_repo, template, 4, NOW + timedelta(hours=1))

        overdue = instance_repo.list_overdue(NOW)

        assert [i.id for i in overdue] == [late.id, later.id]

    def test_list_overdue_filters_snoozable(self, instance_repo, template):
        strict = _instance(instance_repo, template, 1, NOW - timedelta(hours=2))
        snoozable = instance_repo.create(
            create_instance_from_template(template, 2, NOW - timedelta(hours=1), NOW).model_copy(
                update={"can_be_snoozed": True}
            )
        )

        assert [i.id for i in instance_repo.list_overdue(NOW, snoozable=False)] == [strict.id]
        assert [i.id for i in instance_repo.list_overdue(NOW, snoozable=True)] == [snoozable.id]
        assert len(instance_repo.list_overdue(NOW)) == 2

    def test_unique_instance_number(self, instance_repo, template):
        _instance(instance_repo, template, 1, NOW)
        with pytest.raises(IntegrityError):
            _instance(instance_repo, template, 1, NOW + timedelta(days=1))

    def test_latest_by_template(self, instance_repo, template):
        _instance(instance_repo, template, 1, NOW)
        second = _instance(instance_repo, template, 2, NOW + timedelta(days=1))
        assert instance_repo.latest_by_template([template.id])[template.id].id == second.id
        assert instance_repo.latest_by_template([]) == {}


class TestEscalationStateRepository:
    """Compare-and-swap saves on the version column."""

    def test_get_or_create(self, escalation_repo, instance_repo, template):
        instance = _instance(instance_repo, template, 1, NOW)
        state = escalation_repo.get_or_create(instance.id)
        assert state.version == 1
        assert state.level == EscalationLevel.NORMAL
        assert escalation_repo.get_or_create(instance.id).version == 1

    def test_save_bumps_version(self, escalation_repo, instance_repo, template):
        instance = _instance(instance_repo, template, 1, NOW)
        state = escalation_repo.get_or_create(instance.id)
        state.level = EscalationLevel.WARNING
        saved = escalation_repo.save(state)
        assert saved.version == 2
        assert escalation_repo.get(instance.id).level == EscalationLevel.WARNING

    def test_stale_save_raises(self, escalation_repo, instance_repo, template):
        instance = _instance(instance_repo, template, 1, NOW)
        first = escalation_repo.get_or_create(instance.id)
        second = first.model_copy()

        first.notification_count = 1
        escalation_repo.save(first)

        second.notification_count = 5
        with pytest.raises(ConcurrentModification):
            escalation_repo.save(second)
        assert escalation_repo.get(instance.id).notification_count == 1

    def test_duplicate_initial_row_raises(self, escalation_repo, instance_repo, template):
        instance = _instance(instance_repo, template, 1, NOW)
        escalation_repo.save(EscalationState(instance_id=instance.id))
        with pytest.raises(ConcurrentModification):
            escalation_repo.save(EscalationState(instance_id=instance.id))

    def test_list_blocking(self, escalation_repo, instance_repo, template):
        instance = _instance(instance_repo, template, 1, NOW)
        escalation_repo.save(
            EscalationState(
                instance_id=instance.id,
                level=EscalationLevel.BLOCKING,
                blocking_app=True,
                blocking_started_at=NOW,
            )
        )
        assert [s.instance_id for s in escalation_repo.list_blocking()] == [instance.id]

    def test_deleting_instance_removes_state(self, escalation_repo, instance_repo, template):
        instance = _instance(instance_repo, template, 1, NOW)
        escalation_repo.get_or_create(instance.id)
        assert instance_repo.delete(instance.id) is True
        assert escalation_repo.get(instance.id) is None
