import asyncio
import copy

import pytest

from division_tracker.client.records import RecordClient
from division_tracker.core.errors import NotFoundError, TransientIOError, ValidationError
from division_tracker.core.storage import OverlayStore
from division_tracker.pipeline.commit import EditorRouter, EditSession, open_session


ARTS = {
    "id": 1,
    "division_name": "Arts",
    "dean_name": "A. Smith",
    "chair_name": "B. Jones",
    "pen_contact": "P. Lee",
    "loc_rep": "L. Ray",
    "notes": "",
    "program_list": [{"id": 10, "program_name": "Music", "payees": [{"name": "Jo", "amount": 100.0}], "notes": ""}],
}
MATH = {
    "id": 2,
    "division_name": "Math",
    "dean_name": "M",
    "chair_name": "C",
    "pen_contact": "P",
    "loc_rep": "L",
    "notes": "",
    "program_list": [],
}


class FakeRecords(RecordClient):
    """In-memory record client; `fail_push` makes snapshot pushes fail."""

    def __init__(self, divisions=(ARTS, MATH), fail_push=False):
        self.divisions = {d["id"]: copy.deepcopy(d) for d in divisions}
        self.snapshots = []
        self.fail_push = fail_push

    async def fetch_all(self):
        return [copy.deepcopy(d) for d in self.divisions.values()]

    async def fetch_by_id(self, division_id):
        if division_id not in self.divisions:
            raise NotFoundError(f"Division not found: {division_id}")
        return copy.deepcopy(self.divisions[division_id])

    async def append_snapshot(self, draft):
        await asyncio.sleep(0)
        if self.fail_push:
            raise TransientIOError("network down")
        snap = dict(draft, id=len(self.snapshots) + 1)
        self.snapshots.append(snap)
        return snap

    async def list_snapshots(self, limit=200):
        return list(reversed(self.snapshots))[:limit]

    async def fetch_years(self):
        return []

    async def create_year(self, label):
        raise NotImplementedError

    async def set_current_year(self, year_id):
        raise NotImplementedError

    async def delete_year(self, year_id):
        raise NotImplementedError

    async def fetch_schedule(self, year_id=None):
        return []

    async def upsert_schedule_entry(self, year_id, program_id, selected):
        raise NotImplementedError


class CountingStore(OverlayStore):
    def __init__(self, path):
        super().__init__(path)
        self.puts = 0

    def put(self, division_id, name, record):
        self.puts += 1
        return super().put(division_id, name, record)


def accept(labels):
    accept.seen = list(labels)
    return True


def decline(labels):
    return False


@pytest.fixture
def counting_store(tmp_path):
    return CountingStore(tmp_path / "edits.json")


@pytest.mark.asyncio
async def test_form_reflects_overlay(store):
    store.put(1, "Arts", {"dean": "New Dean", "programs_data": [{"program_name": "music", "payees": []}]})
    session = await open_session(FakeRecords(), store, 1)
    assert session.form["dean"] == "New Dean"
    assert session.form["programs"][0]["id"] == 10
    assert session.form["programs"][0]["payees_text"] == ""
    assert session.dirty is False


@pytest.mark.asyncio
async def test_autosave_is_debounced(counting_store):
    session = await open_session(FakeRecords(), counting_store, 1, debounce_seconds=0.05)
    session.set_field("dean", "X")
    session.set_field("dean", "XY")
    session.set_program_field(0, "notes", "n")
    assert session.autosave_pending
    assert counting_store.puts == 0

    await asyncio.sleep(0.15)
    assert counting_store.puts == 1
    assert not session.autosave_pending
    assert counting_store.get(1, "Arts")["dean"] == "XY"
    # autosave is not a commit
    assert session.dirty is True


@pytest.mark.asyncio
async def test_commit_is_durable_before_push(store):
    records = FakeRecords()
    session = await open_session(records, store, 1, debounce_seconds=10)
    session.set_field("chair", "New Chair")

    draft = session.commit_draft()
    data = store.read_all()
    assert data["id:1"] == draft
    assert data["name:arts"] == draft
    assert session.dirty is False
    assert not session.autosave_pending
    assert records.snapshots == []

    snap = await session.flush_push()
    assert snap["chair"] == "New Chair"
    assert len(records.snapshots) == 1


@pytest.mark.asyncio
async def test_push_failure_keeps_local_draft(store, caplog):
    records = FakeRecords(fail_push=True)
    session = await open_session(records, store, 1)
    session.set_field("notes", "remember me")
    session.commit_draft()

    assert await session.flush_push() is None
    assert isinstance(session.last_push_error, TransientIOError)
    assert store.get(1, "Arts")["notes"] == "remember me"
    assert session.dirty is False
    assert "Snapshot push failed" in caplog.text


@pytest.mark.asyncio
async def test_commit_blocks_invalid_form_unless_forced(store):
    records = FakeRecords()
    session = await open_session(records, store, 1, debounce_seconds=10)
    session.set_field("dean", "")

    with pytest.raises(ValidationError) as err:
        session.commit_draft()
    assert err.value.issues == ["Dean"]
    assert store.read_all() == {}
    assert session.dirty is True

    draft = session.commit_draft(force=True)
    assert draft["dean"] == ""
    assert session.dirty is False
    await session.flush_push()
    assert len(records.snapshots) == 1


@pytest.mark.asyncio
async def test_commit_without_any_key_stays_dirty(store):
    records = FakeRecords()
    session = EditSession({"division_name": "", "program_list": []}, store, records, debounce_seconds=10)
    session.set_field("dean", "Typed dean")

    assert session.commit_draft(force=True) is None
    assert session.dirty is True
    assert store.read_all() == {}
    assert await session.flush_push() is None
    assert records.snapshots == []
    session.close()


@pytest.mark.asyncio
async def test_reopen_after_commit_shows_committed_values(store):
    records = FakeRecords()
    session = await open_session(records, store, 1)
    session.set_field("loc", "Z. Zed")
    session.set_program_field(0, "payees_text", "Jo - 100\nKim - 5")
    session.commit_draft()
    await session.flush_push()

    again = await open_session(records, store, 1)
    assert again.form["loc"] == "Z. Zed"
    assert again.form["programs"][0]["payees_text"] == "Jo - 100\nKim - 5"
    assert again.form["programs"][0]["id"] == 10


@pytest.mark.asyncio
async def test_save_declined_does_not_commit(store):
    records = FakeRecords()
    session = await open_session(records, store, 1, debounce_seconds=10)
    session.set_field("dean", "")
    assert await session.save(decline) is False
    assert session.dirty is True
    assert store.get(1, "Arts") is None

    assert await session.save(accept) is True
    assert accept.seen == ["Dean"]
    assert store.get(1, "Arts")["dean"] == "TBD"
    await session.flush_push()
    assert records.snapshots[-1]["dean"] == "TBD"


@pytest.mark.asyncio
async def test_guarded_exit_clean_session_proceeds(store):
    session = await open_session(FakeRecords(), store, 1)
    called = []
    assert await session.guarded_exit(decline, lambda: called.append(1)) is True
    assert called == [1]


@pytest.mark.asyncio
async def test_guarded_exit_valid_dirty_session_flushes_and_proceeds(store):
    session = await open_session(FakeRecords(), store, 1, debounce_seconds=10)
    session.set_field("dean", "Valid Dean")
    called = []
    assert await session.guarded_exit(decline, lambda: called.append(1)) is True
    assert called == [1]
    assert store.get(1, "Arts")["dean"] == "Valid Dean"
    assert not session.autosave_pending


@pytest.mark.asyncio
async def test_guarded_exit_declined_stays(store):
    session = await open_session(FakeRecords(), store, 1, debounce_seconds=10)
    session.add_program()
    called = []
    assert await session.guarded_exit(decline, lambda: called.append(1)) is False
    assert called == []
    assert session.autosave_pending
    assert not session.closed
    session.close()


@pytest.mark.asyncio
async def test_guarded_exit_accepted_remediates_and_commits(store):
    records = FakeRecords()
    session = await open_session(records, store, 1, debounce_seconds=10)
    session.add_program()
    called = []

    async def next_action():
        called.append(1)

    assert await session.guarded_exit(accept, next_action) is True
    assert accept.seen == ["Program 2 Name", "Program 2 Payees"]
    assert called == [1]
    assert not session.autosave_pending
    assert session.dirty is False
    saved = store.get(1, "Arts")
    assert saved["programs_data"][1] == {
        "program_name": "TBD Program",
        "payees": [{"name": "TBD", "amount": 0.0}],
        "has_been_paid": False,
        "report_submitted": False,
        "notes": "",
    }
    await session.flush_push()
    assert len(records.snapshots) == 1


@pytest.mark.asyncio
async def test_open_session_falls_back_to_name_then_blank(store):
    records = FakeRecords()
    by_name = await open_session(records, store, 99, name=" math ")
    assert by_name.form["id"] == 2

    blank = await open_session(records, store, name="Physics")
    assert blank.form["division_name"] == "Physics"
    assert blank.form["programs"] == []
    assert blank.form["id"] is None


@pytest.mark.asyncio
async def test_reset_discards_local_edits(store):
    session = await open_session(FakeRecords(), store, 1, debounce_seconds=10)
    session.set_field("dean", "Temp")
    session.save_local()
    session.reset()
    assert store.read_all() == {}
    assert session.form["dean"] == "A. Smith"
    assert session.dirty is False
    assert not session.autosave_pending


@pytest.mark.asyncio
async def test_router_switch_goes_through_guarded_exit(store):
    router = EditorRouter(FakeRecords(), store, debounce_seconds=10)
    assert await router.select() is None

    first = await router.select(1)
    assert first.form["division_name"] == "Arts"

    first.set_field("division_name", "")
    assert await router.select(2, confirm=decline) is None
    assert router.session is first

    second = await router.select(2, confirm=accept)
    assert second is router.session
    assert second.form["division_name"] == "Math"
    assert first.closed
    assert store.get(1, None)["division_name"] == "TBD"
    await first.flush_push()

    assert await router.leave() is True
    assert router.session is None


def test_session_without_event_loop_defers_push(store):
    records = FakeRecords()
    session = EditSession(copy.deepcopy(ARTS), store, records)
    session.set_field("dean", "Sync Dean")
    # no loop: the write happens immediately
    assert store.get(1, "Arts")["dean"] == "Sync Dean"

    session.commit_draft()
    assert records.snapshots == []
    snap = asyncio.run(session.flush_push())
    assert snap["dean"] == "Sync Dean"


def test_set_unknown_field_raises(store):
    session = EditSession(copy.deepcopy(ARTS), store, FakeRecords())
    with pytest.raises(KeyError):
        session.set_field("budget", 1)
    with pytest.raises(KeyError):
        session.set_program_field(0, "id", 5)
