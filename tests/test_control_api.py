"""Tests for the job control API envelope handling and error mapping."""

from unittest.mock import Mock, patch

import pytest

from bulk_messenger.config.models import AppConfig
from bulk_messenger.control import ControlResponse, JobControlAPI
from bulk_messenger.domain.models import JobStatus
from bulk_messenger.jobs import BulkJobService, JobRunner
from bulk_messenger.persistence import JobStore, PersistenceError, close_database, init_database
from tests.helpers import OTHER_OWNER, OWNER, create_job, make_item, make_items


@pytest.fixture
def store(tmp_path):
    init_database(f"sqlite:///{tmp_path / 'jobs.db'}")
    yield JobStore()
    close_database()


@pytest.fixture
def runner():
    runner = Mock(spec=JobRunner)
    runner.launch.return_value = True
    return runner


@pytest.fixture
def api(store, runner):
    return JobControlAPI(BulkJobService(store, runner, AppConfig()))


class TestStart:
    def test_start_returns_job_id_and_summary(self, api, runner):
        response = api.handle(
            {"action": "start", "owner_id": OWNER, "items": make_items(2), "pace_seconds": 5}
        )

        assert response.ok is True
        assert response.status_code == 200
        job = response.data["job"]
        assert response.data["job_id"] == job["id"]
        assert job["status"] == "pending"
        assert job["total_items"] == 2
        assert job["pace_seconds"] == 5
        assert "items" not in job
        runner.launch.assert_called_once_with(job["id"])

    def test_start_accepts_legacy_field_names(self, api, store):
        response = api.handle(
            {
                "action": "start",
                "seller_id": OWNER,
                "clients": [make_item(1, days_left=30, daysRemaining=2)],
                "interval_seconds": 0,
                "profile_data": {"company_name": "Loja Centro"},
            }
        )

        assert response.ok is True
        stored = store.get_job(response.data["job_id"])
        assert stored.owner_id == OWNER
        assert stored.pace_seconds == 0
        assert stored.profile.company_name == "Loja Centro"
        assert stored.items[0].days_remaining == 2

    def test_malformed_item_values_are_accepted(self, api, store):
        items = [make_item(1), make_item(2, name=12345), make_item(3, days_remaining="soon")]

        response = api.handle({"action": "start", "owner_id": OWNER, "items": items})

        assert response.ok is True
        stored = store.get_job(response.data["job_id"])
        assert stored.total_items == 3
        assert stored.items[1].name == "12345"
        assert stored.items[2].days_remaining == "soon"

    @pytest.mark.parametrize(
        "request_body, field",
        [
            ({"action": "start", "items": make_items(1)}, "owner_id"),
            ({"action": "start", "owner_id": OWNER, "items": []}, "items"),
            ({"action": "start", "owner_id": OWNER}, "items"),
            (
                {"action": "start", "owner_id": OWNER, "items": make_items(1), "pace_seconds": -1},
                "pace_seconds",
            ),
        ],
    )
    def test_invalid_start_is_400(self, api, store, runner, request_body, field):
        response = api.handle(request_body)

        assert response.ok is False
        assert response.status_code == 400
        assert response.error_type == "validation_error"
        assert field in response.error
        runner.launch.assert_not_called()
        assert store.get_active_job(OWNER) is None

    def test_second_start_is_409_with_active_job(self, api):
        first = api.handle({"action": "start", "owner_id": OWNER, "items": make_items(1)})

        second = api.handle({"action": "start", "owner_id": OWNER, "items": make_items(1)})

        assert second.status_code == 409
        assert second.error_type == "conflict"
        assert second.data["job"]["id"] == first.data["job_id"]


class TestEnvelope:
    @pytest.mark.parametrize(
        "request_body",
        [{}, {"action": "explode"}, {"action": None}, ["start"]],
    )
    def test_unknown_or_missing_action_is_400(self, api, request_body):
        response = api.handle(request_body)

        assert response.status_code == 400
        assert response.error_type == "validation_error"

    def test_response_model_helpers(self):
        ok = ControlResponse.success(job=None)
        err = ControlResponse.failure(404, "gone", "not_found")

        assert ok.ok and ok.data == {"job": None} and ok.error is None
        assert not err.ok and err.status_code == 404 and err.data == {}


class TestJobActions:
    def test_pause_resume_cancel(self, api, store, runner):
        job = create_job(store, make_items(3))

        paused = api.handle({"action": "pause", "owner_id": OWNER, "job_id": job.id})
        resumed = api.handle({"action": "resume", "seller_id": OWNER, "job_id": job.id})
        cancelled = api.handle({"action": "cancel", "owner_id": OWNER, "job_id": job.id})

        assert paused.data["job"]["status"] == "paused"
        assert resumed.data["job"]["status"] == "processing"
        assert cancelled.data["job"]["status"] == "cancelled"
        runner.launch.assert_called_once_with(job.id)

    def test_resume_not_paused_is_409(self, api, store):
        job = create_job(store, make_items(1), status=JobStatus.COMPLETED)

        response = api.handle({"action": "resume", "owner_id": OWNER, "job_id": job.id})

        assert response.status_code == 409
        assert response.data["job"]["status"] == "completed"

    def test_foreign_job_is_404(self, api, store):
        job = create_job(store, make_items(1), owner_id=OTHER_OWNER)

        response = api.handle({"action": "cancel", "owner_id": OWNER, "job_id": job.id})

        assert response.status_code == 404
        assert response.error_type == "not_found"
        assert store.get_status(job.id) == JobStatus.PENDING

    def test_missing_job_id_is_400(self, api):
        response = api.handle({"action": "pause", "owner_id": OWNER})

        assert response.status_code == 400
        assert "job_id" in response.error


class TestReads:
    def test_status(self, api, store):
        job = create_job(store, make_items(4), status=JobStatus.PAUSED, current_index=2)

        response = api.handle({"action": "status", "job_id": job.id})

        data = response.data["job"]
        assert data["status"] == "paused"
        assert data["processed_count"] == 2
        assert data["current_index"] == 2
        assert data["created_at"].endswith("Z") or "+00:00" in data["created_at"]

    def test_status_unknown_is_404(self, api):
        assert api.handle({"action": "status", "job_id": "missing"}).status_code == 404

    def test_get_active(self, api, store):
        assert api.handle({"action": "get_active", "owner_id": OWNER}).data == {"job": None}

        job = create_job(store, make_items(1))
        response = api.handle({"action": "get_active", "owner_id": OWNER})

        assert response.data["job"]["id"] == job.id

    def test_list(self, api, store):
        create_job(store, make_items(1), status=JobStatus.COMPLETED)
        create_job(store, make_items(2))

        response = api.handle({"action": "list", "owner_id": OWNER, "limit": 5})

        assert response.ok
        assert len(response.data["jobs"]) == 2
        assert all("items" not in job for job in response.data["jobs"])

    def test_list_limit_out_of_range_is_400(self, api):
        response = api.handle({"action": "list", "owner_id": OWNER, "limit": 0})
        assert response.status_code == 400


class TestStorageFailure:
    def test_storage_error_is_500(self, api, store):
        with patch.object(store, "get_active_job", side_effect=PersistenceError("database is locked")):
            response = api.handle({"action": "get_active", "owner_id": OWNER})

        assert response.status_code == 500
        assert response.error_type == "storage_error"
        assert response.error == "database is locked"

    def test_unexpected_error_is_500(self, api, runner, caplog):
        runner.launch.side_effect = RuntimeError("thread limit reached")

        with caplog.at_level("ERROR", logger="bulk_messenger.control.api"):
            response = api.handle({"action": "start", "owner_id": OWNER, "items": make_items(1)})

        assert response.ok is False
        assert response.status_code == 500
        assert response.error_type == "internal_error"
        assert response.error == "thread limit reached"
        assert any(record.exc_info for record in caplog.records)
