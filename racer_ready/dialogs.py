"""Alert, confirm and prompt dialogs shown in one shared overlay.

Each primitive opens a dialog and returns a :class:`~concurrent.futures.Future`
that resolves exactly once, when the web layer answers it through
:meth:`ModalLayer.respond`. Callers chain their continuation with
``add_done_callback``.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class DialogKind(str, Enum):
    ALERT = "alert"
    CONFIRM = "confirm"
    PROMPT = "prompt"
    BUILD_NAME = "build-name"


# Value a dialog resolves with when it is closed without accepting
_CANCEL_VALUE: Dict[DialogKind, Any] = {
    DialogKind.ALERT: None,
    DialogKind.CONFIRM: False,
    DialogKind.PROMPT: None,
    DialogKind.BUILD_NAME: None,
}

BUILD_NAME_REQUIRED = "Please enter a name for your build."


@dataclass
class Dialog:
    kind: DialogKind
    title: str
    message: str
    icon: str
    future: Future = field(default_factory=Future, repr=False)
    error: Optional[str] = None

    @property
    def heading(self) -> str:
        return f"{self.icon} {self.title}"

    @property
    def takes_input(self) -> bool:
        return self.kind in (DialogKind.PROMPT, DialogKind.BUILD_NAME)

    @property
    def has_cancel(self) -> bool:
        return self.kind is not DialogKind.ALERT


class ModalLayer:
    """At most one open dialog per kind; the newest one owns the overlay.

    Bookkeeping is guarded by a lock. Futures are resolved outside it, and only
    by the caller that detached the dialog, so each resolves exactly once.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._open: Dict[DialogKind, Dialog] = {}
        self._order: List[DialogKind] = []

    @property
    def overlay(self) -> Optional[Dialog]:
        with self._lock:
            if not self._order:
                return None
            return self._open[self._order[-1]]

    @property
    def visible(self) -> bool:
        with self._lock:
            return bool(self._order)

    def is_open(self, kind: DialogKind) -> bool:
        with self._lock:
            return kind in self._open

    def current(self, kind: DialogKind) -> Optional[Dialog]:
        with self._lock:
            return self._open.get(kind)

    def alert(self, message: str, title: str = "Alert", icon: str = "ℹ️") -> Future:
        return self._show(DialogKind.ALERT, message, title, icon)

    def confirm(self, message: str, title: str = "Confirm", icon: str = "❓") -> Future:
        return self._show(DialogKind.CONFIRM, message, title, icon)

    def prompt_text(self, message: str, title: str = "Input", icon: str = "📝") -> Future:
        return self._show(DialogKind.PROMPT, message, title, icon)

    def prompt_build_name(self) -> Future:
        return self._show(DialogKind.BUILD_NAME, "Give this build a name.", "Save Build", "💾")

    def respond(self, kind: DialogKind, accept: bool, value: Optional[str] = None) -> bool:
        """Answer the open dialog of ``kind``.

        Returns False when no such dialog is open. A blank build name keeps
        the build-name dialog open with an error instead of resolving it.
        """
        with self._lock:
            dialog = self._open.get(kind)
            if dialog is None:
                return False
            if not accept:
                result = _CANCEL_VALUE[kind]
            elif kind is DialogKind.ALERT:
                result = None
            elif kind is DialogKind.CONFIRM:
                result = True
            elif kind is DialogKind.PROMPT:
                result = value if value is not None else ""
            else:
                result = (value or "").strip()
                if not result:
                    dialog.error = BUILD_NAME_REQUIRED
                    return True
            self._detach(dialog)
        dialog.future.set_result(result)
        return True

    def close_all(self) -> None:
        with self._lock:
            closing = [self._open[kind] for kind in self._order]
            for dialog in closing:
                self._detach(dialog)
        for dialog in closing:
            dialog.future.set_result(_CANCEL_VALUE[dialog.kind])

    def _show(self, kind: DialogKind, message: str, title: str, icon: str) -> Future:
        dialog = Dialog(kind=kind, title=title, message=message, icon=icon)
        with self._lock:
            previous = self._open.get(kind)
            if previous is not None:
                self._detach(previous)
            self._open[kind] = dialog
            self._order.append(kind)
        if previous is not None:
            previous.future.set_result(_CANCEL_VALUE[kind])
        return dialog.future

    def _detach(self, dialog: Dialog) -> None:
        # Caller holds the lock; detaching first lets continuations reopen the kind
        del self._open[dialog.kind]
        self._order.remove(dialog.kind)
