"""Tests for one user's curation pass."""

from datetime import date, timedelta

import pytest

from taskcurator.curation.curatable import CuratableKind, resolve, resolve_curated
from taskcurator.curation.user_curation import curate_user, run_user_curation, visible_projects
from taskcurator.errors import NotFoundError
from taskcurator.models.curation import CuratedTask, CurationPrompt, DailyCuration, DailyWeightMetric
from taskcurator.task.ai_service import AIServiceInvalidResponseError

TODAY = date(2026, 3, 10)


@pytest.fixture
def workload(db, owner, make_user, make_project, add_member, make_task):
    """Owned project, a shared project, and an archived one."""
    own = make_project(owner, "Own")
    parent = make_task(own, "Epic", size="l")
    overdue = make_task(own, "Overdue", parent=parent, due_date=TODAY - timedelta(days=2), current_story_points=3)
    running = make_task(own, "Running", parent=parent, status="in_progress", current_story_points=5)
    make_task(own, "Done", parent=parent, status="completed", current_story_points=8)

    colleague = make_user()
    shared = make_project(colleague, "Shared")
    add_member(shared, owner)
    unsized = make_task(shared, "Unsized")

    archived = make_project(owner, "Archived", status="archived")
    make_task(archived, "Ignored")

    return {
        "own": own,
        "shared": shared,
        "archived": archived,
        "parent": parent,
        "overdue": overdue,
        "running": running,
        "unsized": unsized,
    }


class TestVisibleProjects:
    def test_owned_and_member_projects(self, db, owner, workload):
        titles = [p.title for p in visible_projects(db, owner.id)]
        assert titles == ["Own", "Shared"]


class TestFallbackPass:
    def test_writes_curations_metrics_and_ranked_tasks(self, db, owner, workload):
        report = curate_user(db, owner.id, today=TODAY)
        db.commit()

        assert report["projects"] == 2
        assert report["ai_generated"] == 0

        curations = db.query(DailyCuration).filter_by(user_id=owner.id, work_date=TODAY).all()
        assert {c.project_id for c in curations} == {workload["own"].id, workload["shared"].id}
        assert all(not c.ai_generated for c in curations)

        own_rows = (
            db.query(CuratedTask)
            .filter_by(assigned_to=owner.id, project_id=workload["own"].id)
            .order_by(CuratedTask.initial_index)
            .all()
        )
        assert [r.curatable_id for r in own_rows] == [workload["overdue"].id, workload["running"].id]
        assert [(r.initial_index, r.current_index, r.moved_count) for r in own_rows] == [(1, 1, 0), (2, 2, 0)]

        metric = db.query(DailyWeightMetric).filter_by(user_id=owner.id, metric_date=TODAY).one()
        assert metric.total_story_points == 8
        assert metric.total_tasks_count == 3
        assert metric.signed_tasks_count == 2
        assert metric.size_breakdown["l"] == 0

        # no provider configured, so nothing was sent anywhere
        assert db.query(CurationPrompt).count() == 0

    def test_parent_tasks_are_not_curated(self, db, owner, workload):
        curate_user(db, owner.id, today=TODAY)
        db.commit()
        ids = {r.curatable_id for r in db.query(CuratedTask).all()}
        assert workload["parent"].id not in ids

    def test_rerun_replaces_rows(self, db, owner, workload):
        curate_user(db, owner.id, today=TODAY)
        db.commit()
        curate_user(db, owner.id, today=TODAY)
        db.commit()

        assert db.query(DailyCuration).filter_by(user_id=owner.id).count() == 2
        assert db.query(CuratedTask).filter_by(assigned_to=owner.id).count() == 2
        assert db.query(DailyWeightMetric).filter_by(user_id=owner.id).count() == 1

    def test_project_without_open_leaves_is_cleared(self, db, owner, workload):
        curate_user(db, owner.id, today=TODAY)
        db.commit()

        workload["unsized"].status = "completed"
        db.commit()

        report = curate_user(db, owner.id, today=TODAY)
        db.commit()

        shared = workload["shared"].id
        assert report["projects"] == 1
        assert db.query(DailyCuration).filter_by(user_id=owner.id, project_id=shared).count() == 0
        assert db.query(CuratedTask).filter_by(assigned_to=owner.id, project_id=shared).count() == 0
        assert db.query(DailyCuration).filter_by(user_id=owner.id, project_id=workload["own"].id).count() == 1

    def test_unknown_user(self, db):
        with pytest.raises(NotFoundError):
            curate_user(db, 4242, today=TODAY)


class TestAiPass:
    def test_ai_result_is_stored(self, db, owner, workload, fake_ai):
        own = workload["own"]
        own.ai_provider = "openai"
        db.commit()

        fake_ai.generate_json.return_value = {
            "suggestions": [
                {"type": "priority", "task_id": workload["overdue"].id, "message": "Do this first"},
                {"type": "optimization", "message": "Batch the reviews"},
            ],
            "summary": "Busy day",
            "focus_areas": ["delivery"],
            "recommended_tasks": [workload["running"].id, 99999],
        }

        report = curate_user(db, owner.id, today=TODAY, ai_factory=lambda project: fake_ai)
        db.commit()
        assert report["ai_generated"] == 1

        curation = db.query(DailyCuration).filter_by(project_id=own.id).one()
        assert curation.ai_generated is True
        assert curation.ai_provider == "openai"
        assert curation.summary == "Busy day"
        assert len(curation.task_suggestions()) == 1
        assert curation.general_suggestions()[0]["message"] == "Batch the reviews"
        assert curation.suggestions_by_type("priority")[0]["task_id"] == workload["overdue"].id

        rows = (
            db.query(CuratedTask)
            .filter_by(project_id=own.id)
            .order_by(CuratedTask.initial_index)
            .all()
        )
        assert [r.curatable_id for r in rows] == [workload["running"].id, workload["overdue"].id]

        prompt = db.query(CurationPrompt).filter_by(project_id=own.id).one()
        assert prompt.task_count == 2
        assert "Overdue" in prompt.prompt_text

    def test_invalid_ai_result_uses_fallback(self, db, owner, workload, fake_ai):
        workload["own"].ai_provider = "openai"
        db.commit()
        fake_ai.generate_json.side_effect = AIServiceInvalidResponseError("garbage")

        report = curate_user(db, owner.id, today=TODAY, ai_factory=lambda project: fake_ai)
        db.commit()

        assert report["ai_generated"] == 0
        curation = db.query(DailyCuration).filter_by(project_id=workload["own"].id).one()
        assert curation.ai_generated is False
        assert "fallback" in curation.summary

    def test_empty_ai_suggestions_use_fallback(self, db, owner, workload, fake_ai):
        workload["own"].ai_provider = "openai"
        db.commit()
        fake_ai.generate_json.return_value = {"suggestions": [], "summary": "nothing"}

        report = curate_user(db, owner.id, today=TODAY, ai_factory=lambda project: fake_ai)
        assert report["ai_generated"] == 0


class TestAtomicity:
    def test_failure_rolls_back_the_whole_pass(self, db, session_factory, owner, workload, fake_ai):
        db.add(CurationPrompt(user_id=owner.id, project_id=workload["own"].id, prompt_text="old", task_count=0))
        workload["own"].ai_provider = "openai"
        db.commit()

        fake_ai.generate_json.side_effect = RuntimeError("provider exploded")

        with pytest.raises(RuntimeError):
            run_user_curation(
                owner.id, session_factory=session_factory, today=TODAY, ai_factory=lambda project: fake_ai
            )

        db.expire_all()
        assert db.query(DailyCuration).count() == 0
        assert db.query(DailyWeightMetric).count() == 0
        assert [p.prompt_text for p in db.query(CurationPrompt).all()] == ["old"]


class TestCuratedTask:
    def test_index_changes_are_counted(self, db, owner, workload):
        row = CuratedTask(
            curatable_kind=CuratableKind.TASK.value,
            curatable_id=workload["overdue"].id,
            assigned_to=owner.id,
            work_date=TODAY,
            initial_index=2,
            current_index=2,
            moved_count=0,
        )
        row.update_index(1)
        row.update_index(1)
        row.update_index(3)
        assert (row.current_index, row.moved_count) == (3, 2)

        row.reset_index()
        assert (row.current_index, row.moved_count) == (2, 2)

    def test_registry_resolves_tasks(self, db, owner, workload):
        task = workload["overdue"]
        assert resolve(db, "task", task.id).id == task.id

        row = CuratedTask(curatable_kind="task", curatable_id=task.id)
        assert resolve_curated(db, row).title == "Overdue"

    def test_unknown_kind(self, db):
        with pytest.raises(ValueError):
            resolve(db, "meeting", 1)


class TestWeightMetric:
    def test_pointed_parent_subtask_is_not_counted(self, db, owner, make_project, make_task):
        project = make_project(owner, "Nested")
        epic = make_task(project, "Epic", size="l")
        story = make_task(project, "Story", parent=epic, current_story_points=5)
        make_task(project, "Child A", parent=story, current_story_points=2)
        make_task(project, "Child B", parent=story, current_story_points=3)

        curate_user(db, owner.id, today=TODAY)
        db.commit()

        metric = db.query(DailyWeightMetric).filter_by(user_id=owner.id, metric_date=TODAY).one()
        assert metric.total_story_points == 5
        assert metric.total_tasks_count == 2
        assert metric.signed_tasks_count == 2
        assert metric.unsigned_tasks_count == 0
