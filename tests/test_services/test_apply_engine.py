"""Tests for the apply engine."""

from __future__ import annotations

import hashlib

import pytest

from doccontrol.config import Settings
from doccontrol.constants import ChangeStatus
from doccontrol.repositories.fakes import FakeDocumentStore
from doccontrol.review import state_machine as sm
from doccontrol.schemas import DocumentSnapshot, ProposedChange
from doccontrol.services.apply_engine import (
    apply_approved_changes,
    change_notes,
    next_version,
    rewrite,
)
from tests.conftest import make_change

APPROVED = ChangeStatus.APPROVED

LAUNCH_TEXT = "Timeline: rollout will begin February 15 in all regions."
BUDGET_TEXT = "Budget is 10k. Owner is Alice."


@pytest.fixture
def store() -> FakeDocumentStore:
    store = FakeDocumentStore()
    store.seed("Launch Plan", LAUNCH_TEXT, document_id="launch")
    store.seed("Budget", BUDGET_TEXT, document_id="budget")
    return store


def launch_change() -> ProposedChange:
    return make_change(
        "c-launch",
        "launch",
        LAUNCH_TEXT,
        "February 15",
        "March 1",
        status=APPROVED,
        section_name="Timeline",
    )


class TestVersioning:
    @pytest.mark.parametrize(
        ("version", "major", "expected"),
        [
            ("1.0", False, "1.1"),
            ("1.9", False, "1.10"),
            ("1.4", True, "2.0"),
            ("3", False, "3.1"),
            ("garbage", False, "1.1"),
            ("1.5.1700000000", False, "1.6"),
            ("2.3.1700000000", True, "3.0"),
        ],
    )
    def test_next_version(
        self, version: str, major: bool, expected: str
    ) -> None:
        assert next_version(version, major=major) == expected

    def test_change_notes_lists_sections_once(self) -> None:
        changes = [
            make_change("a", "d", "x y", "x", "1", section_name="Intro"),
            make_change("b", "d", "x y", "y", "2", section_name="Intro"),
        ]
        assert change_notes(changes) == "AI-assisted update: Intro"
        assert change_notes([]) == "AI-assisted update"


class TestLaunchPlan:
    async def test_minor_bump_and_content(
        self, store: FakeDocumentStore
    ) -> None:
        [result] = await apply_approved_changes(
            [launch_change()], store, user_id="u1"
        )
        assert result.success
        assert result.new_version == "1.1"

        doc = await store.get("launch")
        assert doc.content == (
            "Timeline: rollout will begin March 1 in all regions."
        )
        assert doc.version == "1.1"

    async def test_history_entry_records_prior_version(
        self, store: FakeDocumentStore
    ) -> None:
        await apply_approved_changes([launch_change()], store, user_id="u1")
        doc = await store.get("launch")
        [entry] = doc.version_history
        assert entry.version == "1.0"
        assert entry.content == LAUNCH_TEXT
        assert entry.content_hash == (
            hashlib.sha256(LAUNCH_TEXT.encode()).hexdigest()
        )
        assert entry.change_notes == "AI-assisted update: Timeline"
        assert entry.created_by == "u1"

    async def test_reviewer_edit_wins(self, store: FakeDocumentStore) -> None:
        change = launch_change().model_copy(
            update={"user_edited_text": "April 2"}
        )
        await apply_approved_changes([change], store)
        doc = await store.get("launch")
        assert "April 2" in doc.content

    async def test_large_rewrite_bumps_major(
        self, store: FakeDocumentStore
    ) -> None:
        change = make_change(
            "c1",
            "budget",
            BUDGET_TEXT,
            "Budget is 10k.",
            "The budget was withdrawn entirely pending review.",
            status=APPROVED,
        )
        [result] = await apply_approved_changes(
            [change], store, Settings(major_version_change_ratio=0.5)
        )
        assert result.new_version == "2.0"


class TestSelection:
    async def test_only_approved_changes_are_written(
        self, store: FakeDocumentStore
    ) -> None:
        changes = (
            make_change("p", "budget", BUDGET_TEXT, "10k", "12k"),
            make_change(
                "r",
                "budget",
                BUDGET_TEXT,
                "Alice",
                "Bob",
                status=ChangeStatus.REJECTED,
            ),
        )
        assert await apply_approved_changes(changes, store) == []
        assert store.update_calls == []

    async def test_one_write_per_document(
        self, store: FakeDocumentStore
    ) -> None:
        changes = (
            make_change("a", "budget", BUDGET_TEXT, "10k", "12,500", status=APPROVED),
            make_change("b", "budget", BUDGET_TEXT, "Alice", "Bob", status=APPROVED),
        )
        results = await apply_approved_changes(changes, store)
        assert [r.success for r in results] == [True, True]
        assert len(store.update_calls) == 1
        doc = await store.get("budget")
        assert doc.content == "Budget is 12,500. Owner is Bob."


class TestIsolation:
    async def test_overlapping_change_fails_alone(
        self, store: FakeDocumentStore
    ) -> None:
        changes = (
            make_change("first", "budget", BUDGET_TEXT, "10k", "12k", status=APPROVED),
            make_change(
                "second",
                "budget",
                BUDGET_TEXT,
                "is 10k",
                "is 15k",
                status=APPROVED,
            ),
        )
        first, second = await apply_approved_changes(changes, store)

        assert first.success
        assert first.new_version == "1.1"
        assert not second.success
        assert second.error is not None
        assert "Stale range" in second.error
        doc = await store.get("budget")
        assert doc.content == "Budget is 12k. Owner is Alice."
        assert doc.version == "1.1"

    async def test_external_edit_makes_range_stale(
        self, store: FakeDocumentStore
    ) -> None:
        change = launch_change()
        store.external_edit("launch", "Timeline: to be decided.")
        [result] = await apply_approved_changes([change], store)
        assert not result.success
        assert result.error is not None
        assert "Stale range" in result.error
        assert store.update_calls == []

    async def test_unreachable_document_does_not_block_others(
        self, store: FakeDocumentStore
    ) -> None:
        store.unreachable.add("budget")
        changes = (
            launch_change(),
            make_change("b", "budget", BUDGET_TEXT, "10k", "12k", status=APPROVED),
        )
        results = await apply_approved_changes(changes, store)
        by_id = {r.change_id: r for r in results}
        assert by_id["c-launch"].success
        assert not by_id["b"].success
        assert "Connection refused" in (by_id["b"].error or "")

        budget = store._store["budget"]
        assert budget.content == BUDGET_TEXT
        assert budget.version == "1.0"

    async def test_failed_write_fails_every_change_of_document(
        self, store: FakeDocumentStore
    ) -> None:
        store.failing_updates.add("budget")
        changes = (
            make_change("a", "budget", BUDGET_TEXT, "10k", "12k", status=APPROVED),
            make_change("b", "budget", BUDGET_TEXT, "Alice", "Bob", status=APPROVED),
        )
        results = await apply_approved_changes(changes, store)
        assert [r.success for r in results] == [False, False]
        assert all("Connection reset" in (r.error or "") for r in results)

    async def test_version_conflict_is_reported(self) -> None:
        class RacingStore(FakeDocumentStore):
            """Someone else saves between our read and our write."""

            async def get(self, document_id: str) -> DocumentSnapshot:
                doc = await super().get(document_id)
                self.external_edit(document_id, doc.content)
                return doc

        store = RacingStore()
        store.seed("Budget", BUDGET_TEXT, document_id="budget")
        change = make_change(
            "a", "budget", BUDGET_TEXT, "10k", "12k", status=APPROVED
        )
        [result] = await apply_approved_changes([change], store)
        assert not result.success
        assert "Version conflict" in (result.error or "")

    async def test_results_follow_document_order(
        self, store: FakeDocumentStore
    ) -> None:
        changes = sm.approve_all(
            (
                make_change("b1", "budget", BUDGET_TEXT, "10k", "12k"),
                make_change("l1", "launch", LAUNCH_TEXT, "February 15", "May 2"),
                make_change("b2", "budget", BUDGET_TEXT, "Alice", "Bob"),
            )
        )
        results = await apply_approved_changes(changes, store)
        assert [r.change_id for r in results] == ["b1", "b2", "l1"]


class TestRewrite:
    def test_later_ranges_shift_by_earlier_deltas(self) -> None:
        content = "aa bb cc"
        changes = [
            make_change("1", "d", content, "aa", "AAAA"),
            make_change("2", "d", content, "cc", "C"),
        ]
        result = rewrite(content, changes)
        assert result.content == "AAAA bb C"
        assert [c.id for c in result.applied] == ["1", "2"]
        assert result.failed == {}

    def test_earlier_range_after_later_one_is_not_shifted(self) -> None:
        content = "aa bb cc"
        changes = [
            make_change("1", "d", content, "cc", "CCCC"),
            make_change("2", "d", content, "aa", "A"),
        ]
        assert rewrite(content, changes).content == "A bb CCCC"
