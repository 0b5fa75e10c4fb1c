"""Tests for deletion planning and per-table pruning."""

from __future__ import annotations

import pytest

from conftest import FakeVersionDatabase, version_rows
from versionprune.models import PlanEntry, PruneOutcome, VersionedTable
from versionprune.pruner import DuplicatePruner, plan_deletions, validate_versions_to_keep
from versionprune.report import ReportLog, ReportOutcome


def _table(name: str) -> VersionedTable:
    return VersionedTable(name=name, qualified=f"`demo`.`{name}`")


def test_plan_skips_records_at_or_below_retention() -> None:
    plan = plan_deletions({1: 1, 2: 2, 3: 5}, versions_to_keep=2)

    assert plan == (PlanEntry(record_id=3, rows_to_delete=3),)


def test_plan_schedules_count_minus_keep_per_record() -> None:
    plan = plan_deletions({9: 4, 2: 3, 4: 1}, versions_to_keep=1)

    assert plan == (
        PlanEntry(record_id=2, rows_to_delete=2),
        PlanEntry(record_id=9, rows_to_delete=3),
    )


def test_plan_is_empty_when_nothing_exceeds_retention() -> None:
    assert plan_deletions({}, versions_to_keep=1) == ()
    assert plan_deletions({1: 1, 2: 1}, versions_to_keep=1) == ()


@pytest.mark.parametrize("value", [0, -1, 1.5, True, "2", None])
def test_invalid_versions_to_keep_is_rejected(value: object) -> None:
    with pytest.raises(ValueError):
        validate_versions_to_keep(value)


def test_page_versions_scenario_keeps_latest_version(page_database: FakeVersionDatabase) -> None:
    pruner = DuplicatePruner(page_database)

    result = pruner.prune_table(_table("Page_versions"))

    assert result.outcome is PruneOutcome.SUCCEEDED
    assert result.planned_rows == 3
    assert result.deleted_rows == 3
    assert page_database.versions("Page_versions", 5) == [4]
    assert page_database.versions("Page_versions", 7) == [1]


def test_batch_bounds_each_record_delete(page_database: FakeVersionDatabase) -> None:
    pruner = DuplicatePruner(page_database)

    pruner.prune_table(_table("SiteTree_versions"))

    assert page_database.batches == [
        "DELETE FROM `demo`.`SiteTree_versions` WHERE RecordID = 1 ORDER BY Version ASC, ID ASC LIMIT 1;\n"
        "DELETE FROM `demo`.`SiteTree_versions` WHERE RecordID = 2 ORDER BY Version ASC, ID ASC LIMIT 2;"
    ]


def test_highest_versions_survive_regardless_of_row_ids() -> None:
    # IDs deliberately out of step with version numbers.
    rows = [(10, 3, 5), (11, 3, 1), (12, 3, 4), (13, 3, 2), (14, 3, 3)]
    database = FakeVersionDatabase({"File_versions": rows})
    pruner = DuplicatePruner(database)

    pruner.prune_table(_table("File_versions"), versions_to_keep=2)

    assert database.versions("File_versions", 3) == [4, 5]


def test_empty_plan_is_skipped_without_issuing_deletes() -> None:
    database = FakeVersionDatabase({"Page_versions": version_rows({1: 1, 2: 1})})
    pruner = DuplicatePruner(database)

    result = pruner.prune_table(_table("Page_versions"))

    assert result.outcome is PruneOutcome.SKIPPED
    assert database.batches == []


def test_second_pass_finds_nothing_to_delete(page_database: FakeVersionDatabase) -> None:
    pruner = DuplicatePruner(page_database)
    tables = [_table("Page_versions"), _table("SiteTree_versions")]

    assert pruner.prune_all(tables, versions_to_keep=1) is True
    first_batches = len(page_database.batches)
    results = pruner.prune_tables(tables, versions_to_keep=1)

    assert [result.outcome for result in results] == [PruneOutcome.SKIPPED, PruneOutcome.SKIPPED]
    assert len(page_database.batches) == first_batches


def test_failed_batch_does_not_stop_later_tables(page_database: FakeVersionDatabase) -> None:
    page_database.failing_batches.add("Page_versions")
    pruner = DuplicatePruner(page_database)

    results = pruner.prune_tables([_table("Page_versions"), _table("SiteTree_versions")])

    assert [result.outcome for result in results] == [PruneOutcome.FAILED, PruneOutcome.SUCCEEDED]
    assert results[0].error == "Lock wait timeout exceeded"
    # The failed batch left its table untouched.
    assert page_database.versions("Page_versions", 5) == [1, 2, 3, 4]
    assert page_database.versions("SiteTree_versions", 2) == [3]


def test_prune_all_reports_failure_in_aggregate(page_database: FakeVersionDatabase) -> None:
    page_database.failing_batches.add("SiteTree_versions")
    pruner = DuplicatePruner(page_database)

    assert pruner.prune_all([_table("Page_versions"), _table("SiteTree_versions")]) is False


def test_count_query_failure_marks_table_failed(page_database: FakeVersionDatabase) -> None:
    page_database.failing_counts.add("Page_versions")
    pruner = DuplicatePruner(page_database)

    results = pruner.prune_tables([_table("Page_versions"), _table("SiteTree_versions")])

    assert results[0].outcome is PruneOutcome.FAILED
    assert results[1].outcome is PruneOutcome.SUCCEEDED


def test_only_skipped_or_no_tables_counts_as_success() -> None:
    database = FakeVersionDatabase({"Page_versions": version_rows({1: 1})})
    pruner = DuplicatePruner(database)

    assert pruner.prune_all([]) is True
    assert pruner.prune_all([_table("Page_versions")]) is True


def test_invalid_retention_is_rejected_before_querying(page_database: FakeVersionDatabase) -> None:
    pruner = DuplicatePruner(page_database)

    with pytest.raises(ValueError):
        pruner.prune_all([_table("Page_versions")], versions_to_keep=0)
    assert page_database.queries == []


def test_outcomes_are_reported_inline(page_database: FakeVersionDatabase) -> None:
    page_database.tables["Empty_versions"] = []
    page_database.failing_batches.add("SiteTree_versions")
    report = ReportLog(enabled=True)
    pruner = DuplicatePruner(page_database, report=report)

    pruner.prune_tables(
        [_table("Page_versions"), _table("Empty_versions"), _table("SiteTree_versions")]
    )

    assert [(entry.message, entry.outcome) for entry in report.entries] == [
        ("Cleaned up `demo`.`Page_versions` ...", ReportOutcome.SUCCESS),
        ("Skipped `demo`.`Empty_versions` ...", ReportOutcome.NEUTRAL),
        ("Clean up failed on `demo`.`SiteTree_versions` ...", ReportOutcome.FAILURE),
    ]
    assert all(entry.inline for entry in report.entries)


def test_null_record_groups_are_left_alone() -> None:
    rows = version_rows({5: 3}) + [(50, None, 1), (51, None, 2)]
    database = FakeVersionDatabase({"Page_versions": rows})  # type: ignore[dict-item]
    pruner = DuplicatePruner(database)

    result = pruner.prune_table(_table("Page_versions"))

    assert result.outcome is PruneOutcome.SUCCEEDED
    assert result.planned_rows == 2
    assert database.versions("Page_versions", 5) == [3]
    assert database.versions("Page_versions", None) == [1, 2]  # type: ignore[arg-type]


def test_non_integer_record_id_fails_only_that_table(page_database: FakeVersionDatabase) -> None:
    page_database.tables["Broken_versions"] = [(90, "abc", 1), (91, "abc", 2)]  # type: ignore[list-item]
    pruner = DuplicatePruner(page_database)

    results = pruner.prune_tables([_table("Broken_versions"), _table("Page_versions")])

    assert [result.outcome for result in results] == [PruneOutcome.FAILED, PruneOutcome.SUCCEEDED]
    assert "abc" in (results[0].error or "")
