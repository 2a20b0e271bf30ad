"""Tests for sibling reordering and the priority pull of neighbors."""

from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import create_engine

from taskcurator.database import init_db
from taskcurator.errors import NotFoundError, ValidationError
from taskcurator.models.task import Task
from taskcurator.task.reorder import (
    apply_move,
    find_neighbors,
    propose_move,
    reorder_task,
    resolve_candidate_priority,
    scope_lock,
)


def positions(db, tasks):
    for task in tasks:
        db.refresh(task)
    return [(t.title, t.position) for t in sorted(tasks, key=lambda t: t.position)]


@pytest.fixture
def low_high_high(make_task, project):
    return [
        make_task(project, "A", priority="low"),
        make_task(project, "B", priority="high"),
        make_task(project, "C", priority="high"),
    ]


class TestCandidatePriority:
    """Pure neighbor rule."""

    def test_shared_neighbor_level_wins(self):
        assert resolve_candidate_priority("low", "high", "high") == "high"

    def test_mixed_neighbors_escalate(self):
        assert resolve_candidate_priority("medium", "low", "high") == "high"
        assert resolve_candidate_priority("medium", "high", "low") == "high"

    def test_missing_neighbor_keeps_current(self):
        assert resolve_candidate_priority("low", None, "high") == "low"
        assert resolve_candidate_priority("low", "high", None) == "low"

    def test_matching_neighbors_keep_current(self):
        assert resolve_candidate_priority("medium", "medium", "medium") == "medium"


class TestProposeMove:
    """Previews never write."""

    def test_neighbors_read_against_current_positions(self, db, low_high_high):
        a, b, c = low_high_high
        left, right = find_neighbors(low_high_high, a, 3)
        assert left.id == b.id
        assert right.id == c.id

    def test_proposal_to_end_of_low_high_high(self, db, low_high_high):
        a = low_high_high[0]
        proposal = propose_move(db, a, 3)
        assert proposal.candidate_priority == "high"
        assert proposal.priority_changes

    def test_same_position_is_noop(self, db, low_high_high):
        a = low_high_high[0]
        proposal = propose_move(db, a, 1)
        assert not proposal.priority_changes

    def test_out_of_range_position(self, db, low_high_high):
        with pytest.raises(ValidationError) as exc:
            propose_move(db, low_high_high[0], 4)
        assert exc.value.field == "new_position"
        assert "between 1 and 3" in exc.value.message


class TestApplyMove:
    """Mutation, confirmation and contiguity."""

    def test_requires_confirmation_without_mutation(self, db, low_high_high):
        a = low_high_high[0]
        result = apply_move(db, a, 3)

        assert result["success"] is False
        assert result["requires_confirmation"] is True
        data = result["confirmation_data"]
        assert data["type"] == "moving_to_higher_priority"
        assert data["task_priority"] == "low"
        assert data["suggested_priority"] == "high"
        assert data["neighbor_priorities"] == ["high", "high"]

        assert positions(db, low_high_high) == [("A", 1), ("B", 2), ("C", 3)]
        assert a.priority == "low"
        assert a.move_count == 0

    def test_confirmed_move_changes_priority(self, db, low_high_high):
        a = low_high_high[0]
        result = apply_move(db, a, 3, confirmed=True)

        assert result["success"] is True
        assert result["priority_changed"] is True
        assert result["old_priority"] == "low"
        assert result["new_priority"] == "high"
        assert "Priority changed from low to high." in result["message"]
        assert result["reorder_data"] == {"old_position": 1, "new_position": 3, "move_count": 2}
        assert [s["title"] for s in result["siblings"]] == ["B", "C", "A"]

        db.refresh(a)
        assert a.priority == "high"
        assert a.position == 3
        assert a.move_count == 1
        assert a.last_moved_at is not None

    def test_matching_priorities_never_change(self, db, make_task, project):
        tasks = [make_task(project, name, priority="medium") for name in "XYZ"]
        result = apply_move(db, tasks[0], 3)

        assert result["success"] is True
        assert result["priority_changed"] is False
        assert result["old_priority"] is None
        db.refresh(tasks[0])
        assert tasks[0].priority == "medium"
        assert positions(db, tasks) == [("Y", 1), ("Z", 2), ("X", 3)]

    def test_mixed_neighbors_ask_for_escalation(self, db, make_task, project):
        low = make_task(project, "L", priority="low")
        make_task(project, "H", priority="high")
        moving = make_task(project, "M", priority="medium")

        result = apply_move(db, moving, 2)
        assert result["requires_confirmation"] is True
        assert result["confirmation_data"]["suggested_priority"] == "high"

        result = apply_move(db, low, 1)
        assert result["success"] is True

    def test_move_to_edge_keeps_priority(self, db, low_high_high):
        c = low_high_high[2]
        result = apply_move(db, c, 1)
        assert result["success"] is True
        assert result["priority_changed"] is False
        assert positions(db, low_high_high) == [("C", 1), ("A", 2), ("B", 3)]

    def test_positions_stay_contiguous(self, db, make_task, project):
        tasks = [make_task(project, f"T{i}", priority="medium") for i in range(5)]
        for task, target in [(tasks[4], 1), (tasks[0], 5), (tasks[2], 3), (tasks[1], 4)]:
            db.refresh(task)
            apply_move(db, task, target, confirmed=True)

        assert sorted(p for _, p in positions(db, tasks)) == [1, 2, 3, 4, 5]

    def test_subtask_scope_is_separate(self, db, make_task, project):
        parent = make_task(project, "Parent")
        other_top = make_task(project, "Other")
        children = [make_task(project, f"C{i}", parent=parent) for i in range(3)]

        apply_move(db, children[2], 1)

        assert positions(db, children) == [("C2", 1), ("C0", 2), ("C1", 3)]
        db.refresh(parent)
        db.refresh(other_top)
        assert (parent.position, other_top.position) == (1, 2)

    def test_task_from_another_project(self, db, make_project, owner, low_high_high):
        other = make_project(owner, "Other")
        with pytest.raises(NotFoundError):
            reorder_task(db, other.id, low_high_high[0].id, 2)


class TestReorderApi:
    """POST /projects/{project}/tasks/{task}/reorder"""

    def url(self, project, task):
        return f"/projects/{project.id}/tasks/{task.id}/reorder"

    def test_confirmation_round_trip(self, client, headers, db, project, low_high_high):
        a = low_high_high[0]

        first = client.post(self.url(project, a), json={"new_position": 3}, headers=headers)
        assert first.status_code == 200
        assert first.json()["requires_confirmation"] is True

        second = client.post(
            self.url(project, a), json={"new_position": 3, "confirmed": True}, headers=headers
        )
        assert second.status_code == 200
        body = second.json()
        assert body["success"] is True
        assert body["new_priority"] == "high"

        db.expire_all()
        db.refresh(a)
        assert (a.position, a.priority) == (3, "high")

    def test_requires_token(self, client, project, low_high_high):
        response = client.post(self.url(project, low_high_high[0]), json={"new_position": 2})
        assert response.status_code == 401

    def test_rejects_bad_token(self, client, project, low_high_high):
        response = client.post(
            self.url(project, low_high_high[0]),
            json={"new_position": 2},
            headers={"Authorization": "Bearer not-a-token"},
        )
        assert response.status_code == 401

    def test_other_users_project(self, client, make_user, headers_for, project, low_high_high):
        stranger = make_user()
        response = client.post(
            self.url(project, low_high_high[0]), json={"new_position": 2}, headers=headers_for(stranger)
        )
        assert response.status_code == 403

    def test_task_not_in_project(self, client, headers, make_project, owner, low_high_high):
        other = make_project(owner, "Other")
        response = client.post(self.url(other, low_high_high[0]), json={"new_position": 1}, headers=headers)
        assert response.status_code == 404

    @pytest.mark.parametrize("new_position", [0, -1, 4, "first"])
    def test_invalid_position(self, client, headers, project, low_high_high, new_position):
        response = client.post(
            self.url(project, low_high_high[0]), json={"new_position": new_position}, headers=headers
        )
        assert response.status_code == 422


class TestConcurrentMoves:
    """Moves in one scope are serialized; each worker uses its own session."""

    @pytest.fixture
    def engine(self, tmp_path):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'tasks.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        init_db(bind=engine)
        yield engine
        engine.dispose()

    def test_scope_lock_is_stable(self):
        assert scope_lock((1, None)) is scope_lock((1, None))
        assert scope_lock((1, 5)) is scope_lock((1, 5))

    def test_parallel_moves_keep_positions_contiguous(self, session_factory, make_task, project):
        ids = [make_task(project, f"T{n}").id for n in range(1, 7)]
        moves = [(ids[0], 6), (ids[5], 1), (ids[2], 4), (ids[3], 2), (ids[1], 5), (ids[4], 3)] * 3

        def move(task_id, target):
            session = session_factory()
            try:
                return apply_move(session, session.get(Task, task_id), target, confirmed=True)
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(lambda m: move(*m), moves))

        assert all(r["success"] for r in results)

        check = session_factory()
        try:
            rows = check.query(Task).filter(Task.project_id == project.id, Task.parent_id.is_(None)).all()
            assert sorted(t.position for t in rows) == list(range(1, 7))
            assert sorted(t.id for t in rows) == sorted(ids)
        finally:
            check.close()
