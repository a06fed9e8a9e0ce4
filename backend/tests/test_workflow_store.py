import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from offerflow.errors import AlreadyExistsError, ConcurrencyConflict, NotFoundError
from offerflow.services.workflow_store import EventRecord

OWNER = "user-x"


class TestCreateIfAbsent:
    def test_creates_pending_workflow_at_first_step(self, store, seed_application):
        app_id = seed_application()
        wf = store.create_if_absent(app_id, OWNER)
        assert wf.application_id == app_id
        assert wf.current_step == "background_check"
        assert wf.status == "pending"
        assert wf.version == 1
        assert wf.created_by == OWNER

    def test_second_create_reports_existing(self, store, seed_application):
        app_id = seed_application()
        first = store.create_if_absent(app_id, OWNER)
        with pytest.raises(AlreadyExistsError) as exc_info:
            store.create_if_absent(app_id, OWNER)
        assert exc_info.value.workflow_id == first.id
        assert len(store.list_workflows()) == 1

    def test_unknown_application(self, store):
        with pytest.raises(NotFoundError):
            store.create_if_absent("no-such-application", OWNER)

    def test_cancelled_workflow_frees_the_application(self, store, seed_application):
        app_id = seed_application()
        first = store.create_if_absent(app_id, OWNER)
        store.compare_and_swap_update(first.id, first.version, {"status": "cancelled"})
        second = store.create_if_absent(app_id, OWNER)
        assert second.id != first.id
        assert store.get_by_application(app_id).id == second.id

    def test_concurrent_creates_yield_exactly_one_workflow(self, store, seed_application):
        app_id = seed_application()
        n = 8
        barrier = threading.Barrier(n)

        def attempt():
            barrier.wait()
            try:
                return store.create_if_absent(app_id, OWNER)
            except AlreadyExistsError as exc:
                return exc

        with ThreadPoolExecutor(max_workers=n) as pool:
            results = list(pool.map(lambda _: attempt(), range(n)))

        created = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, AlreadyExistsError)]
        assert len(created) == 1
        assert len(rejected) == n - 1
        assert len(store.list_workflows()) == 1


class TestCompareAndSwap:
    def test_update_bumps_version_and_updated_at(self, store, seed_application):
        wf = store.create_if_absent(seed_application(), OWNER)
        updated = store.compare_and_swap_update(wf.id, wf.version, {"status": "in_progress"})
        assert updated.version == wf.version + 1
        assert updated.updated_at != wf.updated_at
        assert updated.status == "in_progress"

    def test_stale_version_conflicts(self, store, seed_application):
        wf = store.create_if_absent(seed_application(), OWNER)
        store.compare_and_swap_update(wf.id, wf.version, {"background_check_status": "completed"})
        with pytest.raises(ConcurrencyConflict):
            store.compare_and_swap_update(wf.id, wf.version, {"background_check_status": "failed"})
        assert store.get(wf.id).background_check_status == "completed"

    def test_unknown_workflow(self, store):
        with pytest.raises(NotFoundError):
            store.compare_and_swap_update("missing", 1, {"status": "in_progress"})

    def test_racing_writers_one_wins(self, store, seed_application):
        wf = store.create_if_absent(seed_application(), OWNER)
        n = 6
        barrier = threading.Barrier(n)

        def attempt(i):
            barrier.wait()
            try:
                return store.compare_and_swap_update(wf.id, wf.version, {"background_check_status": f"writer-{i}"})
            except ConcurrencyConflict as exc:
                return exc

        with ThreadPoolExecutor(max_workers=n) as pool:
            results = list(pool.map(attempt, range(n)))

        winners = [r for r in results if not isinstance(r, Exception)]
        assert len(winners) == 1
        final = store.get(wf.id)
        assert final.version == wf.version + 1
        assert final.background_check_status == winners[0].background_check_status

    def test_json_payloads_round_trip(self, store, seed_application):
        wf = store.create_if_absent(seed_application(), OWNER)
        result = {"criminal_record": "clear", "checks": ["identity", "employment"]}
        updated = store.compare_and_swap_update(wf.id, wf.version, {"background_check_result": result})
        assert store.get(wf.id).background_check_result == result
        assert updated.background_check_result == result

    def test_event_written_with_update(self, store, seed_application):
        wf = store.create_if_absent(seed_application(), OWNER)
        store.compare_and_swap_update(
            wf.id, wf.version, {"status": "cancelled"},
            EventRecord(event_type="cancelled", step=wf.current_step, notes="closed", actor_id=OWNER),
        )
        events = store.list_events(wf.id)
        assert [e.event_type for e in events] == ["created", "cancelled"]
        assert events[1].notes == "closed"


class TestApplicationContext:
    def test_resolves_candidate_and_job(self, store, seed_application):
        ctx = store.get_application_context(seed_application())
        assert ctx.candidate_name == "Jane Doe"
        assert ctx.job_title == "Backend Engineer"
        assert ctx.job_created_by == OWNER

    def test_unknown_application(self, store):
        with pytest.raises(NotFoundError):
            store.get_application_context("nope")
