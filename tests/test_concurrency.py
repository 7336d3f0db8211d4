"""
Concurrent requests against one database file.

Each worker gets its own store and orchestrator, so every request runs
on a separate SQLite connection and contends for the write lock.
"""

import threading
from datetime import timedelta
from pathlib import Path

from coursework.engine.orchestrator import LifecycleOrchestrator
from coursework.storage.store import LmsStore

from conftest import INSTRUCTOR, NOW, FixedClock

WORKERS = 8


def run_together(temp_db_path: Path, request) -> list:
    """Start `request(orchestrator)` on WORKERS threads at once and collect the outcomes."""
    orchestrators = [
        LifecycleOrchestrator(LmsStore(temp_db_path), clock=FixedClock())
        for _ in range(WORKERS)
    ]
    barrier = threading.Barrier(WORKERS)
    outcomes = [None] * WORKERS

    def worker(index: int) -> None:
        barrier.wait()
        outcomes[index] = request(orchestrators[index])

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(WORKERS)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert all(not thread.is_alive() for thread in threads)
    return outcomes


class TestConcurrentRequests:
    def test_weight_budget_holds_under_contention(self, temp_db_path: Path, store: LmsStore, course_id: str):
        """Only one of several simultaneous weight-60 creates fits the budget."""
        outcomes = run_together(
            temp_db_path,
            lambda orchestrator: orchestrator.request_assignment_create(
                course_id,
                INSTRUCTOR,
                title="Final project",
                due_date=(NOW + timedelta(days=7)).isoformat(),
                points_weight=60,
            ),
        )

        accepted = [o for o in outcomes if o.ok]
        assert len(accepted) == 1
        assert {o.code for o in outcomes if not o.ok} == {"ASSIGNMENT_WEIGHT_EXCEEDED"}
        with store.transaction() as session:
            assert [a.points_weight for a in session.list_assignments(course_id)] == [60]

    def test_one_submission_row_per_learner(
        self,
        temp_db_path: Path,
        store: LmsStore,
        assignment_id: str,
        enrolled_learner: str,
    ):
        outcomes = run_together(
            temp_db_path,
            lambda orchestrator: orchestrator.request_submit(assignment_id, enrolled_learner, content="answer"),
        )

        assert [o.status for o in outcomes].count(201) == 1
        assert {o.code for o in outcomes if not o.ok} == {"SUBMISSION_ALREADY_SUBMITTED"}
        with store.transaction() as session:
            assert len(session.list_submissions(assignment_id)) == 1
