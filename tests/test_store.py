# tests/test_store.py

"""
Score cell store: upsert rules, snapshot reads, deletion.
"""

import pytest

from tabulator import roster, store
from tabulator.db import init_db
from tabulator.exceptions import LockedError, NotFoundError, NotLiveError, ValidationError
from tabulator.models import TrackStatus


class TestUpsert:

    def test_creates_cell(self, conn, seeded):
        cell = store.upsert(conn, seeded.ada.judge_id, seeded.alpha.participant_id, seeded.design.criterion_id, 80)
        assert cell.value == 80
        assert cell.track_id == seeded.track.track_id
        assert cell.locked is False
        assert cell.unlock_requested is False
        assert cell.updated_at

    def test_overwrites_instead_of_appending(self, conn, seeded):
        args = (seeded.ada.judge_id, seeded.alpha.participant_id, seeded.design.criterion_id)
        store.upsert(conn, *args, 80)
        store.upsert(conn, *args, 35)
        cells = store.get_by_participant(conn, seeded.alpha.participant_id)
        assert len(cells) == 1
        assert cells[0].value == 35

    def test_same_submission_twice_is_idempotent(self, conn, seeded):
        args = (seeded.ada.judge_id, seeded.alpha.participant_id, seeded.design.criterion_id, 72)
        first = store.upsert(conn, *args)
        second = store.upsert(conn, *args)
        assert (first.key, first.value, first.locked, first.unlock_requested) == (
            second.key, second.value, second.locked, second.unlock_requested
        )
        assert len(store.get_by_track(conn, seeded.track.track_id)) == 1

    @pytest.mark.parametrize("value", [0, 100])
    def test_bounds_are_inclusive(self, conn, seeded, value):
        cell = store.upsert(conn, seeded.ada.judge_id, seeded.beta.participant_id, seeded.design.criterion_id, value)
        assert cell.value == value

    @pytest.mark.parametrize("value", [-1, 101, 250, 50.5, True, None, "80"])
    def test_rejects_invalid_values(self, conn, seeded, value):
        with pytest.raises(ValidationError):
            store.upsert(conn, seeded.ada.judge_id, seeded.beta.participant_id, seeded.design.criterion_id, value)
        assert store.get_by_participant(conn, seeded.beta.participant_id) == ()

    def test_accepts_integral_float(self, conn, seeded):
        cell = store.upsert(conn, seeded.ada.judge_id, seeded.beta.participant_id, seeded.design.criterion_id, 60.0)
        assert cell.value == 60

    @pytest.mark.parametrize("status", [TrackStatus.SETUP, TrackStatus.ENDED])
    def test_rejects_when_track_not_live(self, conn, seeded, status):
        roster.set_status(conn, seeded.track.track_id, status)
        with pytest.raises(NotLiveError) as exc:
            store.upsert(conn, seeded.ada.judge_id, seeded.alpha.participant_id, seeded.design.criterion_id, 50)
        # a not-live rejection is also a validation failure
        assert isinstance(exc.value, ValidationError)
        assert exc.value.status == status.value

    def test_override_does_not_bypass_closed_track(self, conn, seeded):
        roster.set_status(conn, seeded.track.track_id, TrackStatus.ENDED)
        with pytest.raises(NotLiveError):
            store.upsert(
                conn, seeded.ada.judge_id, seeded.alpha.participant_id, seeded.design.criterion_id, 50, override=True
            )

    def test_locked_cell_rejects_judge_write(self, conn, seeded):
        args = (seeded.ada.judge_id, seeded.alpha.participant_id, seeded.design.criterion_id)
        store.upsert(conn, *args, 80, lock=True)
        with pytest.raises(LockedError):
            store.upsert(conn, *args, 90)
        assert store.get_cell(conn, *args).value == 80

    def test_override_writes_through_lock_and_keeps_it(self, conn, seeded):
        args = (seeded.ada.judge_id, seeded.alpha.participant_id, seeded.design.criterion_id)
        store.upsert(conn, *args, 80, lock=True)
        cell = store.upsert(conn, *args, 90, override=True)
        assert cell.value == 90
        assert cell.locked is True

    def test_unknown_ids(self, conn, seeded):
        with pytest.raises(NotFoundError):
            store.upsert(conn, 999, seeded.alpha.participant_id, seeded.design.criterion_id, 50)
        with pytest.raises(NotFoundError):
            store.upsert(conn, seeded.ada.judge_id, 999, seeded.design.criterion_id, 50)
        with pytest.raises(NotFoundError):
            store.upsert(conn, seeded.ada.judge_id, seeded.alpha.participant_id, 999, 50)

    def test_rejects_cross_track_references(self, conn, seeded):
        other = roster.create_track(conn, "Art")
        foreign = roster.add_criterion(conn, other.track_id, "Color", 100)
        with pytest.raises(ValidationError):
            store.upsert(conn, seeded.ada.judge_id, seeded.alpha.participant_id, foreign.criterion_id, 50)


class TestReads:

    def test_get_by_participant_and_judge(self, conn, seeded):
        store.upsert(conn, seeded.ada.judge_id, seeded.alpha.participant_id, seeded.design.criterion_id, 80)
        store.upsert(conn, seeded.ada.judge_id, seeded.beta.participant_id, seeded.design.criterion_id, 70)
        store.upsert(conn, seeded.grace.judge_id, seeded.alpha.participant_id, seeded.function.criterion_id, 60)

        alpha_cells = store.get_by_participant(conn, seeded.alpha.participant_id)
        ada_cells = store.get_by_judge(conn, seeded.ada.judge_id)

        assert {c.judge_id for c in alpha_cells} == {seeded.ada.judge_id, seeded.grace.judge_id}
        assert {c.participant_id for c in ada_cells} == {seeded.alpha.participant_id, seeded.beta.participant_id}
        assert isinstance(alpha_cells, tuple)


class TestDelete:

    def test_delete_by_key_removes_every_criterion(self, conn, seeded):
        for criterion in (seeded.design, seeded.function):
            store.upsert(conn, seeded.ada.judge_id, seeded.alpha.participant_id, criterion.criterion_id, 50)
        store.upsert(conn, seeded.grace.judge_id, seeded.alpha.participant_id, seeded.design.criterion_id, 50)

        assert store.delete_by_key(conn, seeded.ada.judge_id, seeded.alpha.participant_id) == 2
        remaining = store.get_by_participant(conn, seeded.alpha.participant_id)
        assert [c.judge_id for c in remaining] == [seeded.grace.judge_id]

    def test_delete_by_key_without_cells_is_noop(self, conn, seeded):
        assert store.delete_by_key(conn, seeded.ada.judge_id, seeded.gamma.participant_id) == 0

    def test_deleting_participant_cascades_cells(self, conn, seeded):
        store.upsert(conn, seeded.ada.judge_id, seeded.alpha.participant_id, seeded.design.criterion_id, 50)
        roster.delete_participant(conn, seeded.alpha.participant_id)
        assert store.get_by_track(conn, seeded.track.track_id) == ()

    def test_deleting_judge_cascades_cells(self, conn, seeded):
        store.upsert(conn, seeded.ada.judge_id, seeded.alpha.participant_id, seeded.design.criterion_id, 50)
        roster.delete_judge(conn, seeded.ada.judge_id)
        assert store.get_by_track(conn, seeded.track.track_id) == ()

    def test_deleting_track_cascades_everything(self, conn, seeded):
        store.upsert(conn, seeded.ada.judge_id, seeded.alpha.participant_id, seeded.design.criterion_id, 50)
        roster.delete_track(conn, seeded.track.track_id)
        assert store.get_by_track(conn, seeded.track.track_id) == ()
        assert roster.list_participants(conn, seeded.track.track_id) == []


class TestSchema:

    def test_init_db_is_repeatable_and_keeps_cells(self, conn, db_path, seeded):
        store.upsert(conn, seeded.ada.judge_id, seeded.alpha.participant_id, seeded.design.criterion_id, 70)
        init_db(db_path)
        cols = [r["name"] for r in conn.execute("PRAGMA table_info(scores)").fetchall()]
        assert "updated_at" in cols
        assert [c.value for c in store.get_by_track(conn, seeded.track.track_id)] == [70]
