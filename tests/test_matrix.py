from dataclasses import replace
from datetime import datetime, timezone

import pytest

from conftest import NOW, PAGE_ID
from errors import AuthorizationError, RecordNotFoundError
from matrix import (
    PrioritizationMatrix,
    filter_records,
    overview_stats,
    record_years,
    records_frame,
    sort_records,
)
from permissions import PageSet, Role, UserProfile
from records import APPROVE_DENIED_MESSAGE, DELETE_DENIED_MESSAGE, EDIT_DENIED_MESSAGE, RecordStatus


@pytest.fixture
def matrix(demo_repo, catalog):
    return PrioritizationMatrix(demo_repo, catalog, page_id=PAGE_ID)


def _ids(records):
    return [r.id for r in records]


class TestMatrixActions:
    def test_anonymous_cannot_submit(self, matrix, form_data):
        with pytest.raises(AuthorizationError) as exc_info:
            matrix.submit(form_data, None, now=NOW)
        assert exc_info.value.user_message == "Please sign in to create prioritization item"
        assert len(matrix.repository.list()) == 3

    def test_submit_stores_draft_under_profile_name(self, matrix, form_data, contributor):
        record = matrix.submit(form_data, contributor, now=NOW)

        assert record.id == "PM-2024-004"
        assert record.record_status is RecordStatus.DRAFT
        assert record.submitted_by == "Agricultural Department Head"
        assert matrix.get(record.id) == record

    def test_admin_submission_is_still_draft(self, matrix, form_data, global_admin):
        assert matrix.submit(form_data, global_admin, now=NOW).is_draft

    def test_edit_updates_store(self, matrix, form_data, contributor):
        updated = matrix.edit("PM-2024-001", form_data, contributor, now=NOW)

        assert updated.title == "Library Roof Leak Repair"
        assert updated.record_status is RecordStatus.PUBLISHED
        assert updated.submitted_by == "Facilities Management Team"
        assert matrix.get("PM-2024-001").last_modified == NOW

    def test_anonymous_cannot_edit(self, matrix, form_data):
        with pytest.raises(AuthorizationError) as exc_info:
            matrix.edit("PM-2024-001", form_data, None)
        assert exc_info.value.user_message == "Please sign in to edit prioritization item"

    def test_page_admin_approves(self, matrix, page_admin):
        approved = matrix.approve("PM-2024-003", page_admin, now=NOW)
        assert approved.is_published
        assert matrix.get("PM-2024-003").is_published

    @pytest.mark.parametrize("who", ["contributor", "editor_on_page", None])
    def test_non_admin_approval_denied(self, matrix, request, who):
        profile = request.getfixturevalue(who) if who else None
        with pytest.raises(AuthorizationError) as exc_info:
            matrix.approve("PM-2024-003", profile, now=NOW)
        assert exc_info.value.user_message == APPROVE_DENIED_MESSAGE
        assert matrix.get("PM-2024-003").is_draft

    def test_page_admin_without_admin_role_cannot_delete(self, matrix, page_admin):
        with pytest.raises(AuthorizationError) as exc_info:
            matrix.delete("PM-2024-001", page_admin)
        assert exc_info.value.user_message == DELETE_DENIED_MESSAGE
        assert matrix.get("PM-2024-001")

    def test_admin_deletes(self, matrix, global_admin):
        matrix.delete("PM-2024-001", global_admin)
        with pytest.raises(RecordNotFoundError):
            matrix.get("PM-2024-001")

    def test_anonymous_cannot_delete(self, matrix):
        with pytest.raises(AuthorizationError) as exc_info:
            matrix.delete("PM-2024-001", None)
        assert exc_info.value.user_message == "Please sign in to delete prioritization item"

    def test_unknown_record(self, matrix, global_admin):
        with pytest.raises(RecordNotFoundError):
            matrix.approve("PM-2024-999", global_admin)

    def test_ids_do_not_collide_after_delete(self, matrix, form_data, global_admin):
        matrix.delete("PM-2024-002", global_admin)
        assert matrix.submit(form_data, global_admin, now=NOW).id == "PM-2024-004"

    def test_newest_id_is_not_reissued_after_delete(self, matrix, form_data, global_admin):
        matrix.delete("PM-2024-003", global_admin)
        assert matrix.submit(form_data, global_admin, now=NOW).id == "PM-2024-004"

    def test_submitted_then_deleted_id_is_not_reissued(self, matrix, form_data, global_admin):
        first = matrix.submit(form_data, global_admin, now=NOW)
        matrix.delete(first.id, global_admin)
        assert matrix.submit(form_data, global_admin, now=NOW).id == "PM-2024-005"

    @pytest.mark.parametrize("role", [Role.CLIENT, Role.EDITOR, Role.DIRECTOR])
    def test_edit_requires_admin_or_staff_role(self, matrix, role):
        outsider = UserProfile(name="Outsider", role=role, page_scope=PageSet(frozenset({PAGE_ID})))
        before = matrix.get("PM-2024-001")

        with pytest.raises(AuthorizationError) as exc_info:
            matrix.edit("PM-2024-001", {"title": "Retitled"}, outsider, now=NOW)

        assert exc_info.value.user_message == EDIT_DENIED_MESSAGE
        assert matrix.get("PM-2024-001") is before

    def test_admin_may_edit_others_records(self, matrix, global_admin):
        updated = matrix.edit("PM-2024-002", {"title": "Retitled"}, global_admin, now=NOW)
        assert updated.title == "Retitled"
        assert updated.submitted_by == "Campus Facilities Team"

    def test_list_visible_per_viewer(self, matrix, contributor, global_admin):
        assert _ids(matrix.list_visible(None)) == ["PM-2024-001", "PM-2024-002"]
        assert _ids(matrix.list_visible(contributor)) == ["PM-2024-001", "PM-2024-002", "PM-2024-003"]
        assert len(matrix.list_visible(global_admin)) == 3


class TestFilterAndSort:
    @pytest.mark.parametrize("kwargs, expected", [
        ({"search": "ventilation"}, ["PM-2024-002"]),
        ({"search": "cegs"}, ["PM-2024-001"]),
        ({"search": "  BUILDING "}, ["PM-2024-001", "PM-2024-002", "PM-2024-003"]),
        ({"campus": "CSU Main Campus"}, ["PM-2024-001", "PM-2024-003"]),
        ({"priority": "Medium"}, ["PM-2024-003"]),
        ({"category": "Equipment"}, ["PM-2024-001"]),
        ({"college": "CED", "priority": "all"}, ["PM-2024-002"]),
        ({"campus": "all", "category": ""}, ["PM-2024-001", "PM-2024-002", "PM-2024-003"]),
        ({"campus": "CSU Main Campus", "priority": "High"}, ["PM-2024-001"]),
        ({"year": 2024}, ["PM-2024-001", "PM-2024-002", "PM-2024-003"]),
        ({"year": "2024", "priority": "Medium"}, ["PM-2024-003"]),
        ({"year": 2023}, []),
        ({"year": "all"}, ["PM-2024-001", "PM-2024-002", "PM-2024-003"]),
    ])
    def test_filters(self, demo_repo, kwargs, expected):
        assert _ids(filter_records(demo_repo.list(), **kwargs)) == expected

    @pytest.mark.parametrize("sort_by, expected", [
        ("priority", ["PM-2024-001", "PM-2024-002", "PM-2024-003"]),
        ("score", ["PM-2024-001", "PM-2024-002", "PM-2024-003"]),
        ("cost", ["PM-2024-001", "PM-2024-002", "PM-2024-003"]),
        ("beneficiaries", ["PM-2024-002", "PM-2024-001", "PM-2024-003"]),
    ])
    def test_sort(self, demo_repo, sort_by, expected):
        assert _ids(sort_records(demo_repo.list(), sort_by)) == expected

    def test_priority_sort_is_stable_for_ties(self, demo_repo):
        reordered = list(reversed(demo_repo.list()))
        assert _ids(sort_records(reordered, "priority")) == ["PM-2024-002", "PM-2024-001", "PM-2024-003"]

    def test_unknown_sort_key_keeps_order(self, demo_repo):
        reordered = list(reversed(demo_repo.list()))
        assert sort_records(reordered, "colour") == reordered

    def test_year_filter_and_year_options(self, demo_repo):
        older = replace(demo_repo.get("PM-2024-002"), date_created=datetime(2023, 11, 20, tzinfo=timezone.utc))
        records = [demo_repo.get("PM-2024-001"), older]

        assert _ids(filter_records(records, year=2023)) == ["PM-2024-002"]
        assert record_years(records) == [2024, 2023]


class TestOverview:
    def test_stats_for_demo_records(self, demo_repo):
        stats = overview_stats(demo_repo.list())

        assert stats == {
            "total_items": 3,
            "assessed_items": 2,
            "high_priority": 2,
            "medium_priority": 1,
            "low_priority": 0,
            "high_pct": 67,
            "medium_pct": 33,
            "low_pct": 0,
            "avg_priority_score": 3.6,
        }

    def test_stats_for_no_records(self):
        stats = overview_stats([])
        assert stats["total_items"] == 0
        assert stats["high_pct"] == 0
        assert stats["avg_priority_score"] == 0.0

    def test_records_frame_columns(self, demo_repo, catalog):
        frame = records_frame(demo_repo.list(), catalog)

        assert list(frame["id"]) == ["PM-2024-001", "PM-2024-002", "PM-2024-003"]
        assert frame.loc[0, "score_safety_compliance"] == 4
        assert frame.loc[2, "record_status"] == "Draft"
        assert frame.loc[0, "date_created"] == "2024-01-15"

    def test_empty_records_frame_keeps_columns(self, catalog):
        frame = records_frame([], catalog)
        assert frame.empty
        assert "total_weighted_score" in frame.columns
