import pytest

from division_tracker.core.errors import NotFoundError
from division_tracker.repo.divisions import (
    apply_snapshot,
    create_division,
    delete_division,
    find_division_by_name,
    get_division,
    get_program,
    list_divisions,
    rename_division,
)
from division_tracker.repo.submissions import get_snapshot, list_snapshots, record_submission


def _draft(**over):
    draft = {
        "division_name": "Arts",
        "dean": "A. Smith",
        "chair": "B. Jones",
        "pen": "",
        "loc": "",
        "notes": "",
        "programs_data": [
            {"program_name": "Music", "payees": [{"name": "Jo", "amount": 100}], "has_been_paid": True},
            {"program_name": "Theatre", "payees": [{"name": "Kim", "amount": "50"}]},
        ],
    }
    draft.update(over)
    return draft


def test_create_get_list(conn):
    did = create_division(conn, "  Science ", dean_name="Dr. X")
    create_division(conn, "arts")
    div = get_division(conn, did)
    assert div["division_name"] == "Science"
    assert div["dean_name"] == "Dr. X"
    assert div["program_list"] == []
    assert [d["division_name"] for d in list_divisions(conn)] == ["arts", "Science"]


def test_unknown_ids_raise_not_found(conn):
    with pytest.raises(NotFoundError):
        get_division(conn, 404)
    with pytest.raises(NotFoundError):
        rename_division(conn, 404, "x")
    with pytest.raises(NotFoundError):
        delete_division(conn, 404)
    with pytest.raises(NotFoundError):
        get_program(conn, 404)


def test_find_by_name_is_case_insensitive(conn):
    did = create_division(conn, "Arts")
    assert find_division_by_name(conn, " ARTS ")["id"] == did
    assert find_division_by_name(conn, "Math") is None
    assert find_division_by_name(conn, "") is None


def test_apply_snapshot_creates_division_with_programs(conn):
    did = apply_snapshot(conn, _draft())
    div = get_division(conn, did)
    assert div["dean_name"] == "A. Smith"
    assert [p["program_name"] for p in div["program_list"]] == ["Music", "Theatre"]
    assert div["program_list"][0]["payees"] == [{"name": "Jo", "amount": 100.0}]
    assert div["program_list"][0]["has_been_paid"] is True
    assert div["program_list"][1]["payees"] == [{"name": "Kim", "amount": 50.0}]


def test_apply_snapshot_reuses_program_ids_by_name(conn):
    did = apply_snapshot(conn, _draft())
    ids = {p["program_name"]: p["id"] for p in get_division(conn, did)["program_list"]}

    apply_snapshot(
        conn,
        _draft(
            id=did,
            dean="C. New",
            programs_data=[
                {"program_name": " theatre ", "payees": []},
                {"program_name": "Dance", "payees": [{"name": "Lu", "amount": 5}]},
            ],
        ),
    )
    div = get_division(conn, did)
    assert div["dean_name"] == "C. New"
    progs = div["program_list"]
    assert [p["program_name"] for p in progs] == ["theatre", "Dance", "Music"]
    assert progs[0]["id"] == ids["Theatre"]
    assert progs[0]["payees"] == []
    # omitted programs stay
    assert progs[2]["id"] == ids["Music"]
    assert progs[2]["payees"] == [{"name": "Jo", "amount": 100.0}]


def test_apply_snapshot_falls_back_to_name_for_stale_id(conn):
    did = create_division(conn, "Arts")
    assert apply_snapshot(conn, _draft(id=999, division_name="ARTS")) == did


def test_record_submission_appends_history(conn):
    first = record_submission(conn, _draft())
    second = record_submission(conn, _draft(id=first["division_id"], notes="More"))
    assert first["division_id"] == second["division_id"]
    assert first["program_count"] == 2
    assert first["payee_count"] == 2
    assert first["total_amount"] == 150.0
    assert first["programs"][0]["program_name"] == "Music"
    assert get_snapshot(conn, second["id"])["notes"] == "More"
    assert [s["id"] for s in list_snapshots(conn)] == [second["id"], first["id"]]
    assert len(list_snapshots(conn, limit=1)) == 1
    with pytest.raises(NotFoundError):
        get_snapshot(conn, 12345)


def test_delete_division_keeps_snapshots(conn):
    snap = record_submission(conn, _draft())
    delete_division(conn, snap["division_id"])
    assert list_divisions(conn) == []
    assert len(list_snapshots(conn)) == 1


def test_get_program(conn):
    did = apply_snapshot(conn, _draft())
    pid = get_division(conn, did)["program_list"][0]["id"]
    assert get_program(conn, pid) == {"id": pid, "program_name": "Music", "division_id": did, "division_name": "Arts"}
