import racer_ready.datastore_pg as pg
from racer_ready import datastore
from racer_ready.dialogs import DialogKind
from racer_ready.feature import ListState
from racer_ready.navigation import TrackPanel, Trigger
from racer_ready.tracks import day_sections


def _track(ws, name, location=""):
    ws.sections.switch("tracks")
    ws.tracks.open_add()
    return ws.tracks.add_track(name, location)


def _day(track_id, owner="U1", **fields):
    record = {"trackId": track_id, "ownerId": owner, "raceName": "Practice", "createdAt": 1, "pointsEarned": 0}
    record.update(fields)
    return datastore.create(datastore.DAYS, record)


def test_add_track_persists_and_returns_to_history(ws, memory_store):
    track_id = _track(ws, "  Oakhill  ", "North Loop")

    stored = memory_store["tracks"][track_id]
    assert stored["name"] == "Oakhill"
    assert stored["notes"] == ""
    assert stored["ownerId"] == "U1"
    assert isinstance(stored["createdAt"], int)
    assert ws.track_nav.active is TrackPanel.HISTORY
    assert [t["id"] for t in ws.tracks.tracks] == [track_id]
    assert ws.tracks.tracks_state is ListState.READY


def test_duplicate_name_is_per_owner_and_case_insensitive(make_workspace, memory_store):
    u1 = make_workspace("U1")
    _track(u1, "Oakhill")

    assert u1.tracks.add_track("oakhill") is None
    assert u1.dialogs.overlay.title == "Duplicate Track"
    assert len(memory_store["tracks"]) == 1

    u2 = make_workspace("U2")
    assert _track(u2, "oakhill") is not None
    assert len(memory_store["tracks"]) == 2


def test_blank_name_is_rejected_before_any_store_call(ws, memory_store):
    ws.sections.switch("tracks")
    assert ws.tracks.add_track("   ") is None
    assert ws.dialogs.overlay.message == "Please enter a track name."
    assert "tracks" not in memory_store or not memory_store["tracks"]


def test_signed_out_user_is_told_to_log_in(ws, memory_store):
    ws.sign_out()
    assert ws.tracks.add_track("Oakhill") is None
    assert ws.dialogs.overlay.title == "Not Logged In"
    assert ws.tracks.list_tracks() == []
    assert ws.tracks.tracks_state is ListState.LOGIN_REQUIRED


def test_list_failure_shows_error_state(ws, store_failure):
    store_failure("query")
    ws.sections.switch("tracks")
    assert ws.tracks.tracks_state is ListState.ERROR


def test_late_list_result_is_discarded_after_navigation(ws, monkeypatch):
    _track(ws, "Oakhill")
    original = pg.query

    def racing_query(collection, filters):
        if collection == "tracks":
            ws.track_nav.fire(Trigger.OPEN_ADD)
        return original(collection, filters)

    monkeypatch.setattr(pg, "query", racing_query)
    ws.tracks.tracks = []
    ws.tracks.list_tracks()
    assert ws.tracks.tracks == []


def test_delete_track_removes_its_days_then_the_track(ws, memory_store):
    keep = _track(ws, "Lakeside")
    doomed = _track(ws, "Oakhill")
    for n in range(3):
        _day(doomed, createdAt=n)
    survivor = _day(keep)

    ws.tracks.delete_track(doomed)
    assert ws.dialogs.overlay.message == "Delete this track?"
    ws.dialogs.respond(DialogKind.CONFIRM, True)

    assert datastore.query(datastore.DAYS, [datastore.where("trackId", doomed)]) == []
    assert doomed not in memory_store["tracks"]
    assert list(memory_store["days"]) == [survivor]
    assert [t["id"] for t in ws.tracks.tracks] == [keep]


def test_declining_delete_changes_nothing(ws, memory_store):
    track_id = _track(ws, "Oakhill")
    _day(track_id)
    ws.tracks.delete_track(track_id)
    ws.dialogs.respond(DialogKind.CONFIRM, False)
    assert track_id in memory_store["tracks"]
    assert len(memory_store["days"]) == 1


def test_failed_child_delete_keeps_track_and_alerts(ws, memory_store, store_failure):
    track_id = _track(ws, "Oakhill")
    stuck = _day(track_id)
    _day(track_id)
    store_failure("delete", when=lambda collection, doc_id: doc_id == stuck)

    ws.tracks.delete_track(track_id)
    ws.dialogs.respond(DialogKind.CONFIRM, True)

    assert track_id in memory_store["tracks"]
    assert list(memory_store["days"]) == [stuck]
    assert ws.dialogs.overlay.message == "Error deleting track."


def test_load_track_lists_days_most_recent_first(ws):
    track_id = _track(ws, "Oakhill")
    for stamp in (5, 20, 10, 20):
        _day(track_id, createdAt=stamp)
    _day(track_id, owner="U2", createdAt=99)

    assert ws.tracks.load_track(track_id)
    assert ws.track_nav.active is TrackPanel.DETAILS
    stamps = [d["createdAt"] for d in ws.tracks.days]
    assert stamps == [20, 20, 10, 5]


def test_load_unknown_track_is_silent(ws):
    ws.sections.switch("tracks")
    assert ws.tracks.load_track("missing") is False
    assert ws.dialogs.overlay is None
    assert ws.track_nav.active is TrackPanel.HISTORY


def test_add_day_prompts_for_race_name(ws, memory_store):
    track_id = _track(ws, "Oakhill")
    ws.tracks.load_track(track_id)
    ws.tracks.open_day_entry()

    ws.tracks.add_day({"humidity": "55%", "pointsEarned": "7"})
    prompt = ws.dialogs.current(DialogKind.PROMPT)
    assert (prompt.title, prompt.icon) == ("Race Name", "🏁")
    ws.dialogs.respond(DialogKind.PROMPT, True, "Club Round 3")

    (day,) = memory_store["days"].values()
    assert day["raceName"] == "Club Round 3"
    assert day["trackName"] == "Oakhill"
    assert day["humidity"] == "55%"
    assert day["surfaceCondition"] == ""
    assert day["pointsEarned"] == 7
    assert ws.track_nav.active is TrackPanel.DETAILS
    assert len(ws.tracks.days) == 1
    assert ws.dialogs.overlay.message == "Day entry saved successfully!"


def test_cancelling_race_name_saves_nothing(ws, memory_store):
    track_id = _track(ws, "Oakhill")
    ws.tracks.load_track(track_id)
    ws.tracks.open_day_entry()
    ws.tracks.add_day({"pointsEarned": "x"})
    ws.dialogs.respond(DialogKind.PROMPT, False)
    assert not memory_store.get("days")
    assert ws.track_nav.active is TrackPanel.DAY_ENTRY


def test_edit_keeps_timestamp_unless_changed(ws, memory_store):
    track_id = _track(ws, "Oakhill")
    day_id = _day(track_id, createdAt=1_700_000_012_345, humidity="40%")
    ws.tracks.load_track(track_id)

    assert ws.tracks.edit_day(day_id)
    prefill = ws.tracks.edit_prefill()
    fields = dict(prefill, raceName="Final", humidity="", pointsEarned="12")
    assert ws.tracks.save_day_edit(fields, prefill["timestamp"])
    stored = memory_store["days"][day_id]
    assert stored["createdAt"] == 1_700_000_012_345
    assert stored["raceName"] == "Final"
    assert stored["humidity"] == ""
    assert stored["pointsEarned"] == 12
    assert ws.track_nav.active is TrackPanel.DETAILS

    ws.tracks.edit_day(day_id)
    ws.tracks.save_day_edit(dict(prefill, raceName="Final"), "2024-01-01T10:00")
    assert memory_store["days"][day_id]["createdAt"] == 1_704_103_200_000


def test_view_day_groups_conditions(ws):
    track_id = _track(ws, "Oakhill")
    day_id = _day(track_id, gripLevel="High", windConditions="Calm")
    ws.tracks.load_track(track_id)
    assert ws.tracks.view_day(day_id)
    assert ws.track_nav.active is TrackPanel.VIEW_DAY
    sections = dict(day_sections(ws.tracks.viewed_day))
    assert sections["Track Conditions"] == [("Grip Level", "High")]
    assert sections["Weather Conditions"] == [("Wind Conditions", "Calm")]
    assert ws.tracks.back()
    assert ws.track_nav.active is TrackPanel.DETAILS


def test_view_of_someone_elses_day_is_ignored(ws):
    track_id = _track(ws, "Oakhill")
    other = _day(track_id, owner="U2")
    ws.tracks.load_track(track_id)
    assert ws.tracks.view_day(other) is False
    assert ws.track_nav.active is TrackPanel.DETAILS


def test_delete_day_after_confirm(ws, memory_store):
    track_id = _track(ws, "Oakhill")
    day_id = _day(track_id)
    ws.tracks.load_track(track_id)
    ws.tracks.delete_day(day_id)
    ws.dialogs.respond(DialogKind.CONFIRM, True)
    assert day_id not in memory_store["days"]
    assert ws.tracks.days == []


def test_points_standings_sum_only_scoring_days(ws):
    track_id = _track(ws, "Oakhill")
    _day(track_id, pointsEarned=10, createdAt=1)
    _day(track_id, pointsEarned=0, createdAt=2)
    _day(track_id, pointsEarned=5, createdAt=3)
    ws.tracks.load_track(track_id)

    assert ws.tracks.open_standings()
    assert ws.track_nav.active is TrackPanel.POINTS_STANDINGS
    assert ws.tracks.standings["total"] == 15
    assert len(ws.tracks.standings["days"]) == 2


def test_track_settings_update_metadata(ws, memory_store):
    track_id = _track(ws, "Oakhill")
    _track(ws, "Lakeside")
    ws.tracks.load_track(track_id)
    ws.tracks.open_settings()

    assert not ws.tracks.save_track_settings("LAKESIDE")
    assert ws.dialogs.overlay.title == "Duplicate Track"

    assert ws.tracks.save_track_settings("Oakhill GP", "North", "Bumpy in turn 3")
    assert memory_store["tracks"][track_id]["notes"] == "Bumpy in turn 3"
    assert ws.tracks.current_track["name"] == "Oakhill GP"
    assert ws.track_nav.active is TrackPanel.DETAILS


def test_duplicate_check_uses_the_loaded_list(make_workspace, memory_store):
    first = make_workspace("U1")
    second = make_workspace("U1")
    first.sections.switch("tracks")
    first.tracks.open_add()
    _track(second, "Oakhill")

    assert first.tracks.add_track("oakhill") is not None
    assert len(memory_store["tracks"]) == 2

    assert first.tracks.tracks_state is ListState.READY
    first.tracks.open_add()
    assert first.tracks.add_track("OAKHILL") is None
    assert first.dialogs.overlay.title == "Duplicate Track"
