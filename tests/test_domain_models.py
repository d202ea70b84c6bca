"""Unit tests for domain models."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from bulk_messenger.domain.models import (
    ACTIVE_STATUSES,
    BulkJob,
    JobItem,
    JobStatus,
    MessageTemplate,
    ProfileData,
    TemplateType,
)

NOW = datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)


def make_job(**overrides):
    fields = {
        "id": "4f1c",
        "owner_id": "seller-1",
        "total_items": 2,
        "items": [{"id": "cust-1"}, {"id": "cust-2"}],
        "created_at": NOW,
        "updated_at": NOW,
    }
    fields.update(overrides)
    return BulkJob(**fields)


class TestJobItem:
    def test_every_field_is_optional(self):
        item = JobItem()

        assert item.id is None
        assert item.phone is None
        assert item.days_remaining is None

    def test_numeric_identifiers_are_coerced(self):
        item = JobItem(id=42, phone=5511987654321)

        assert item.id == "42"
        assert item.phone == "5511987654321"

    def test_unknown_keys_are_preserved(self):
        item = JobItem.model_validate({"id": "a", "notes": "vip"})

        assert item.model_extra == {"notes": "vip"}
        assert item.model_dump()["notes"] == "vip"

    def test_malformed_values_are_kept_not_rejected(self):
        item = JobItem.model_validate(
            {"name": 12345, "category": True, "plan_name": 3.5, "days_remaining": "soon"}
        )

        assert item.name == "12345"
        assert item.category == "True"
        assert item.plan_name == "3.5"
        assert item.days_remaining == "soon"

    @pytest.mark.parametrize("value, expected", [(3, 3), ("3", 3), (" -2 ", -2), (4.0, 4)])
    def test_whole_days_remaining_become_int(self, value, expected):
        assert JobItem(days_remaining=value).days_remaining == expected

    @pytest.mark.parametrize("value", ["2.5", 2.5, True])
    def test_fractional_or_boolean_days_stay_text(self, value):
        assert isinstance(JobItem(days_remaining=value).days_remaining, str)

    def test_camel_case_days_remaining(self):
        item = JobItem.model_validate({"id": "a", "daysRemaining": 2})

        assert item.days_remaining == 2
        assert item.model_extra == {}
        assert item.model_dump()["days_remaining"] == 2

    def test_non_scalar_price_is_text(self):
        assert JobItem(plan_price={"monthly": 35}).plan_price == "{'monthly': 35}"


class TestBulkJob:
    def test_defaults(self):
        job = make_job()

        assert job.status == JobStatus.PENDING
        assert job.processed_count == job.success_count == job.error_count == 0
        assert job.current_index == 0
        assert job.pace_seconds == 15
        assert isinstance(job.profile, ProfileData)
        assert job.is_active and not job.is_terminal

    @pytest.mark.parametrize("status", [JobStatus.COMPLETED, JobStatus.CANCELLED])
    def test_terminal_statuses(self, status):
        job = make_job(status=status)

        assert job.is_terminal
        assert not job.is_active

    def test_active_statuses(self):
        assert ACTIVE_STATUSES == {JobStatus.PENDING, JobStatus.PROCESSING, JobStatus.PAUSED}

    @pytest.mark.parametrize(
        "field, value",
        [("id", ""), ("owner_id", ""), ("pace_seconds", -1), ("current_index", -1)],
    )
    def test_invalid_fields(self, field, value):
        with pytest.raises(ValidationError):
            make_job(**{field: value})

    def test_summary_excludes_items(self):
        summary = make_job(last_error="boom").summary()

        assert summary.id == "4f1c"
        assert summary.last_error == "boom"
        assert "items" not in summary.model_dump()
        assert "profile" not in summary.model_dump()


class TestMessageTemplate:
    def test_name_is_stripped(self):
        template = MessageTemplate(
            owner_id="s", name="  IPTV cobrança ", template_type="billing", message="m"
        )

        assert template.name == "IPTV cobrança"
        assert template.template_type == TemplateType.BILLING

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            MessageTemplate(owner_id="s", name="   ", template_type="billing", message="m")

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            MessageTemplate(owner_id="s", name="x", template_type="weekly", message="m")
