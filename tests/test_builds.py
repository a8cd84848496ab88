from racer_ready import datastore
from racer_ready.builds import (
    FIELDS_BY_KEY,
    format_slider_value,
    settings_to_values,
)
from racer_ready.dialogs import BUILD_NAME_REQUIRED, DialogKind
from racer_ready.feature import ListState
from racer_ready.navigation import BuildPanel


def _setup(ws, category="kart"):
    ws.sections.switch("build")
    assert ws.builds.create_new()
    assert ws.builds.pick_category(category)


def test_picking_a_category_opens_its_first_tab(ws):
    _setup(ws, "kart")
    surface = ws.builds.surface
    assert ws.build_nav.active is BuildPanel.SETUP
    assert surface.title == "Kart Adjustments"
    assert surface.tab == "frontend"
    assert [f.key for f in surface.visible_fields()][:2] == ["caster", "camber"]

    assert ws.builds.select_tab("drivetrain")
    assert not ws.builds.select_tab("tires")
    assert surface.tab == "drivetrain"


def test_unknown_category_is_refused(ws):
    ws.sections.switch("build")
    ws.builds.create_new()
    assert not ws.builds.pick_category("engine")
    assert ws.build_nav.active is BuildPanel.CATEGORY


def test_update_surface_ignores_unknown_keys_and_clears_blanks(ws):
    _setup(ws)
    ws.builds.update_surface({"caster": "4.5", "toe": " 1 ", "spoiler": "big"})
    ws.builds.update_surface({"toe": ""})
    assert ws.builds.surface.values == {"caster": "4.5"}


def test_save_build_prompts_until_named(ws, memory_store):
    _setup(ws, "tire")
    ws.builds.update_surface({"frontPressure": "11.5", "compound": "Wet"})
    fut = ws.builds.save_build()

    ws.dialogs.respond(DialogKind.BUILD_NAME, True, "  ")
    assert ws.dialogs.current(DialogKind.BUILD_NAME).error == BUILD_NAME_REQUIRED
    assert not memory_store.get("builds")

    ws.dialogs.respond(DialogKind.BUILD_NAME, True, "Wet Day")
    assert fut.result() == "Wet Day"
    (build,) = memory_store["builds"].values()
    assert build["name"] == "Wet Day"
    assert build["settings"] == {"frontPressure": "11.5", "compound": "Wet"}
    assert build["ownerId"] == "U1"
    assert ws.dialogs.overlay.message == "Build saved successfully!"


def test_cancelled_save_writes_nothing(ws, memory_store):
    _setup(ws)
    ws.builds.save_build()
    ws.dialogs.respond(DialogKind.BUILD_NAME, False)
    assert not memory_store.get("builds")
    assert ws.dialogs.overlay is None


def test_saved_list_is_per_owner(make_workspace):
    u1 = make_workspace("U1")
    u2 = make_workspace("U2")
    datastore.create(datastore.BUILDS, {"name": "Mine", "settings": {}, "ownerId": "U1", "createdAt": 1})
    datastore.create(datastore.BUILDS, {"name": "Theirs", "settings": {}, "ownerId": "U2", "createdAt": 2})

    u1.sections.switch("build")
    assert u1.builds.show_saved()
    assert [b["name"] for b in u1.builds.builds] == ["Mine"]

    u2.sections.switch("build")
    u2.builds.show_saved()
    assert [b["name"] for b in u2.builds.builds] == ["Theirs"]


def test_load_build_restores_values_and_reports(ws):
    build_id = datastore.create(
        datastore.BUILDS,
        {"name": "Dry", "settings": {"maxRpm": "13500", "Driver Sprocket": 11}, "ownerId": "U1", "createdAt": 1},
    )
    ws.sections.switch("build")
    ws.builds.show_saved()

    assert ws.builds.load_build(build_id)
    assert ws.build_nav.active is BuildPanel.CATEGORY
    assert ws.builds.surface.values == {"maxRpm": "13500", "driverSprocket": "11"}
    assert ws.dialogs.overlay.message == 'Build "Dry" loaded successfully!'


def test_load_missing_build_alerts(ws):
    ws.sections.switch("build")
    ws.builds.show_saved()
    assert not ws.builds.load_build("builds-404")
    assert (ws.dialogs.overlay.message, ws.dialogs.overlay.title) == ("Build not found!", "Not Found")
    assert ws.build_nav.active is BuildPanel.SAVED


def test_delete_build_after_confirm(ws, memory_store):
    build_id = datastore.create(datastore.BUILDS, {"name": "Old", "settings": {}, "ownerId": "U1", "createdAt": 1})
    ws.sections.switch("build")
    ws.builds.show_saved()

    ws.builds.delete_build(build_id)
    assert ws.dialogs.overlay.message == "Are you sure you want to delete this build?"
    ws.dialogs.respond(DialogKind.CONFIRM, True)

    assert not memory_store["builds"]
    assert ws.dialogs.overlay.title == "Deleted"
    assert ws.builds.builds_state is ListState.EMPTY


def test_signed_out_saved_list_asks_for_login(ws):
    ws.sign_out()
    ws.builds.list_builds()
    assert ws.builds.builds_state is ListState.LOGIN_REQUIRED
    assert ws.dialogs.overlay.title == "Not Logged In"


def test_slider_readouts_carry_units():
    assert format_slider_value(FIELDS_BY_KEY["driverSprocket"], 12) == "12T"
    assert format_slider_value(FIELDS_BY_KEY["caster"], 2.5) == "2.5°"
    assert format_slider_value(FIELDS_BY_KEY["maxRpm"], 13500) == "13500 RPM"
    assert format_slider_value(FIELDS_BY_KEY["frontBias"], 44) == "44% Front"
    assert format_slider_value(FIELDS_BY_KEY["frontPressure"], 10) == "10 PSI"
    assert format_slider_value(FIELDS_BY_KEY["compound"], "Wet") == "Wet"
    assert format_slider_value(FIELDS_BY_KEY["caster"], "") == ""


def test_settings_to_values_drops_unknown_and_empty():
    assert settings_to_values({"Caster": 3, "ballast": "", "Wing": 9}) == {"caster": "3"}
    assert settings_to_values(None) == {}


def test_load_build_outside_saved_list_is_ignored(ws):
    build_id = datastore.create(
        datastore.BUILDS, {"name": "Dry", "settings": {"caster": "4"}, "ownerId": "U1", "createdAt": 1}
    )
    _setup(ws)
    ws.builds.update_surface({"toe": "1"})

    assert not ws.builds.load_build(build_id)
    assert ws.build_nav.active is BuildPanel.SETUP
    assert ws.builds.surface.values == {"toe": "1"}
    assert ws.dialogs.overlay is None
