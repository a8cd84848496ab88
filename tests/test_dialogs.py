import threading

from racer_ready.dialogs import BUILD_NAME_REQUIRED, DialogKind, ModalLayer


def test_alert_defaults_and_resolves_once_acknowledged():
    layer = ModalLayer()
    fut = layer.alert("Saved")
    dialog = layer.overlay
    assert (dialog.title, dialog.icon, dialog.has_cancel) == ("Alert", "ℹ️", False)
    assert not fut.done()

    assert layer.respond(DialogKind.ALERT, True)
    assert fut.result() is None
    assert layer.overlay is None


def test_confirm_accept_and_cancel():
    layer = ModalLayer()
    yes = layer.confirm("Delete this track?")
    assert layer.overlay.heading == "❓ Confirm"
    layer.respond(DialogKind.CONFIRM, True)
    no = layer.confirm("Delete this track?")
    layer.respond(DialogKind.CONFIRM, False)
    assert yes.result() is True
    assert no.result() is False


def test_prompt_returns_text_or_none():
    layer = ModalLayer()
    entered = layer.prompt_text("Race name?")
    layer.respond(DialogKind.PROMPT, True, "Club Round 3")
    escaped = layer.prompt_text("Race name?")
    layer.respond(DialogKind.PROMPT, False, "ignored")
    assert entered.result() == "Club Round 3"
    assert escaped.result() is None


def test_build_name_blank_keeps_dialog_open_with_error():
    layer = ModalLayer()
    fut = layer.prompt_build_name()

    assert layer.respond(DialogKind.BUILD_NAME, True, "   ")
    assert not fut.done()
    assert layer.current(DialogKind.BUILD_NAME).error == BUILD_NAME_REQUIRED

    layer.respond(DialogKind.BUILD_NAME, True, "  Wet setup  ")
    assert fut.result() == "Wet setup"


def test_build_name_cancel_resolves_none():
    layer = ModalLayer()
    fut = layer.prompt_build_name()
    layer.respond(DialogKind.BUILD_NAME, False)
    assert fut.result() is None


def test_answering_a_closed_kind_is_a_no_op():
    layer = ModalLayer()
    assert layer.respond(DialogKind.CONFIRM, True) is False


def test_reopening_a_kind_cancels_the_earlier_dialog():
    layer = ModalLayer()
    first = layer.confirm("first?")
    second = layer.confirm("second?")
    assert first.result() is False
    assert not second.done()
    assert layer.overlay.message == "second?"


def test_overlay_shows_newest_open_dialog():
    layer = ModalLayer()
    layer.confirm("Delete?")
    layer.alert("Heads up")
    assert layer.overlay.kind is DialogKind.ALERT
    layer.respond(DialogKind.ALERT, True)
    assert layer.overlay.kind is DialogKind.CONFIRM


def test_continuation_may_open_a_follow_up_dialog():
    layer = ModalLayer()
    fut = layer.confirm("Delete?")
    fut.add_done_callback(lambda f: layer.confirm("Really?"))
    layer.respond(DialogKind.CONFIRM, True)
    assert layer.overlay.message == "Really?"


def test_concurrent_open_and_answer_keeps_the_layer_consistent():
    layer = ModalLayer()
    errors = []
    futures = []

    def worker():
        try:
            for _ in range(500):
                futures.append(layer.alert("x"))
                layer.respond(DialogKind.ALERT, True)
                layer.overlay
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert layer.overlay is None or layer.overlay.kind is DialogKind.ALERT
    layer.respond(DialogKind.ALERT, True)
    assert layer.overlay is None
    assert all(f.done() for f in futures)
