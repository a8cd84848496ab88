"""Pieces shared by the track, tire and build modules."""

import logging
from enum import Enum
from typing import Optional

from . import datastore
from .dialogs import ModalLayer
from .navigation import NavigationStack
from .session import Identity, NotAuthenticated, Session

logger = logging.getLogger(__name__)

DAY_FIELDS = (
    "surfaceCondition",
    "moistureContent",
    "gripLevel",
    "groovePosition",
    "surfaceTexture",
    "airTemperature",
    "surfaceTemperature",
    "humidity",
    "timeOfDay",
    "windConditions",
)


class ListState(str, Enum):
    LOGIN_REQUIRED = "login-required"
    EMPTY = "empty"
    READY = "ready"
    ERROR = "error"


class FeatureModule:
    """Holds the collaborators a feature area is constructed with."""

    def __init__(self, session: Session, dialogs: ModalLayer, nav: NavigationStack, store=datastore):
        self.session = session
        self.dialogs = dialogs
        self.nav = nav
        self.store = store

    def _identity(self, message: str) -> Optional[Identity]:
        """Signed-in identity, or None after showing the log-in alert."""
        try:
            return self.session.require()
        except NotAuthenticated:
            self.dialogs.alert(message, "Not Logged In", "⚠️")
            return None

    def _owns(self, collection: str, doc_id: str, uid: str) -> bool:
        """True when the document exists and belongs to ``uid``; raises StoreError."""
        doc = self.store.get(collection, doc_id)
        return doc is not None and doc.get("ownerId") == uid

    def _missing(self, message: str, title: str = "Missing Information") -> None:
        self.dialogs.alert(message, title, "⚠️")

    def _failed(self, message: str) -> None:
        logger.exception("%s: %s", self.nav.name, message)
        self.dialogs.alert(message, "Error", "❌")

    def _success(self, message: str, title: str = "Success") -> None:
        self.dialogs.alert(message, title, "✅")


def text_field(fields, key: str) -> str:
    value = fields.get(key) if fields else None
    return str(value) if value is not None else ""
