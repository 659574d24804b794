import threading

import pytest

from division_tracker.client.records import SqliteRecordClient
from division_tracker.core.errors import ConflictError, NotFoundError
from division_tracker.core.storage import OverlayStore
from division_tracker.pipeline.commit import open_session
from division_tracker.pipeline.scheduling import (
    ScheduleManager,
    build_schedule_map,
    find_current_year,
    next_year_label,
    order_programs,
)
from division_tracker.repo import submissions as submissions_repo


@pytest.mark.parametrize(
    "label, expected",
    [
        ("2024-2025", "2025-2026"),
        ("2024-25", "2025-26"),
        ("1999-2000", "2000-2001"),
        ("2099-99", "2100-00"),
        (" 2024 - 2025 ", "2025-2026"),
        ("Fall 2024", "2025-2026"),
        (None, "2025-2026"),
    ],
)
def test_next_year_label(label, expected):
    assert next_year_label(label) == expected


def test_build_schedule_map_and_current():
    rows = [
        {"academic_year_id": 1, "program_id": 10, "is_selected": True},
        {"academic_year_id": 1, "program_id": 11, "is_selected": False},
        {"academic_year_id": 2, "program_id": 10, "is_selected": 1},
        {"academic_year_id": None, "program_id": 3, "is_selected": True},
    ]
    assert build_schedule_map(rows) == {1: {10: True, 11: False}, 2: {10: True}}
    assert find_current_year([{"id": 1, "is_current": False}, {"id": 2, "is_current": True}])["id"] == 2
    assert find_current_year([]) is None


def test_order_programs_selected_first_then_alpha():
    programs = [
        {"id": 1, "program_name": "zoology"},
        {"id": 2, "program_name": "Art"},
        {"id": None, "program_name": "biology"},
        {"id": 4, "program_name": "Music"},
    ]
    assert [p["program_name"] for p in order_programs(programs, {4, 1})] == ["Music", "zoology", "Art", "biology"]


@pytest.fixture
def records(tmp_settings):
    return SqliteRecordClient()


async def _seed_program(records, name="Music"):
    snap = await records.append_snapshot(
        {"division_name": "Arts", "programs_data": [{"program_name": name, "payees": [{"name": "Jo", "amount": 1}]}]}
    )
    division = await records.fetch_by_id(snap["division_id"])
    return division["program_list"][0]["id"]


@pytest.mark.asyncio
async def test_sqlite_client_runs_repo_calls_off_the_event_loop(records, monkeypatch):
    seen = []

    def fake_record_submission(conn, draft):
        seen.append(threading.get_ident())
        return dict(draft, id=1)

    monkeypatch.setattr(submissions_repo, "record_submission", fake_record_submission)
    snap = await records.append_snapshot({"division_name": "Arts"})
    assert snap == {"division_name": "Arts", "id": 1}
    assert seen and seen[0] != threading.get_ident()


@pytest.mark.asyncio
async def test_add_next_year_follows_last_label(records):
    manager = ScheduleManager(records)
    first = await records.create_year("2024-2025")
    await manager.set_current_year(first["id"])
    nxt = await manager.add_next_year()
    assert nxt["label"] == "2025-2026"
    assert nxt["is_current"] is False
    assert (await manager.current_year())["id"] == first["id"]


@pytest.mark.asyncio
async def test_add_next_year_without_years_uses_default(records):
    year = await ScheduleManager(records).add_next_year()
    assert year["label"] == "2025-2026"


@pytest.mark.asyncio
async def test_single_current_year(records):
    manager = ScheduleManager(records)
    ids = [(await records.create_year(label))["id"] for label in ("2023-2024", "2024-2025", "2025-2026")]
    for yid in (ids[2], ids[0], ids[1], ids[1]):
        await manager.set_current_year(yid)
        years = await manager.years()
        assert [y["id"] for y in years if y["is_current"]] == [yid]


@pytest.mark.asyncio
async def test_delete_current_year_conflicts(records):
    manager = ScheduleManager(records)
    a = await records.create_year("2024-2025")
    b = await records.create_year("2025-2026")
    await manager.set_current_year(a["id"])
    before = await manager.years()

    with pytest.raises(ConflictError):
        await manager.delete_year(a["id"])
    assert await manager.years() == before

    await manager.delete_year(b["id"])
    assert [y["id"] for y in await manager.years()] == [a["id"]]
    with pytest.raises(NotFoundError):
        await manager.delete_year(b["id"])


@pytest.mark.asyncio
async def test_toggle_selection_is_idempotent(records):
    manager = ScheduleManager(records)
    year = await records.create_year("2024-2025")
    pid = await _seed_program(records)

    first = await manager.toggle_selection(year["id"], pid, True)
    again = await manager.toggle_selection(year["id"], pid, True)
    assert first == again
    assert await manager.schedule_map() == {year["id"]: {pid: True}}


@pytest.mark.asyncio
async def test_view_lock_on_previous_years(records):
    locked = ScheduleManager(records)
    old = await records.create_year("2023-2024")
    cur = await records.create_year("2024-2025")
    await locked.set_current_year(cur["id"])
    pid = await _seed_program(records)

    assert [y["id"] for y in await locked.editable_years()] == [cur["id"]]
    with pytest.raises(ConflictError):
        await locked.toggle_from_view(old["id"], pid, True)
    await locked.toggle_from_view(cur["id"], pid, True)

    # storage level accepts any year
    await locked.toggle_selection(old["id"], pid, True)

    unlocked = ScheduleManager(records, lock_previous=False)
    assert len(await unlocked.editable_years()) == 2
    entry = await unlocked.toggle_from_view(old["id"], pid, False)
    assert entry["is_selected"] is False


@pytest.mark.asyncio
async def test_selected_programs_sort_first_in_editor(records, tmp_path):
    manager = ScheduleManager(records)
    snap = await records.append_snapshot(
        {
            "division_name": "Arts",
            "programs_data": [
                {"program_name": "Art", "payees": []},
                {"program_name": "Zoology", "payees": []},
            ],
        }
    )
    division = await records.fetch_by_id(snap["division_id"])
    zoology = division["program_list"][1]["id"]
    year = await records.create_year("2024-2025")
    await manager.set_current_year(year["id"])
    await manager.toggle_selection(year["id"], zoology, True)

    assert await manager.selected_program_ids() == {zoology}
    session = await open_session(records, OverlayStore(tmp_path / "e.json"), snap["division_id"], schedule=manager)
    assert [p["program_name"] for p in session.form["programs"]] == ["Zoology", "Art"]

    entry = await session.mark_for_improvement(1, True)
    assert entry["is_selected"] is True
    assert session.selected_ids == {zoology, division["program_list"][0]["id"]}


@pytest.mark.asyncio
async def test_mark_for_improvement_requires_saved_program_and_current_year(records, tmp_path):
    manager = ScheduleManager(records)
    pid = await _seed_program(records)
    session = await open_session(records, OverlayStore(tmp_path / "e.json"), name="Arts", schedule=manager)
    assert session.form["programs"][0]["id"] == pid

    with pytest.raises(ConflictError):
        await session.mark_for_improvement(0, True)

    idx = session.add_program()
    year = await records.create_year("2024-2025")
    await manager.set_current_year(year["id"])
    with pytest.raises(ConflictError):
        await session.mark_for_improvement(idx, True)
    session.close()
