"""Current identity per browser, plus the registry of per-browser workspaces."""

import logging
import os
import threading
import time
import uuid
from collections import namedtuple
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

Identity = namedtuple("Identity", "uid email")


class NotAuthenticated(Exception):
    """An owner-scoped operation ran without a signed-in identity."""


class Session:
    def __init__(self, identity: Optional[Identity] = None):
        self.identity = identity

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    def sign_in(self, identity: Identity) -> None:
        self.identity = identity

    def sign_out(self) -> None:
        self.identity = None

    def require(self) -> Identity:
        if self.identity is None:
            raise NotAuthenticated("no signed-in identity")
        return self.identity


class Workspace:
    """Everything one browser works with: session, dialogs, stacks and modules."""

    def __init__(self, workspace_id: str):
        # Feature modules import this module for NotAuthenticated
        from .builds import BuildModule
        from .dialogs import ModalLayer
        from .navigation import SectionSwitcher, build_stack, tire_stack, track_stack
        from .tires import TireModule
        from .tracks import TrackModule

        self.id = workspace_id
        # Held by the request using this workspace; see routes_auth.current_workspace
        self.lock = threading.RLock()
        self.session = Session()
        self.dialogs = ModalLayer()
        self.track_nav = track_stack()
        self.tire_nav = tire_stack()
        self.build_nav = build_stack()
        self.tracks = TrackModule(self.session, self.dialogs, self.track_nav)
        self.tires = TireModule(self.session, self.dialogs, self.tire_nav)
        self.builds = BuildModule(self.session, self.dialogs, self.build_nav)
        self.sections = SectionSwitcher(
            {"tracks": self.track_nav, "tires": self.tire_nav, "build": self.build_nav}
        )
        self.touched = time.monotonic()

    def stack(self, area: str):
        return {"tracks": self.track_nav, "tires": self.tire_nav, "build": self.build_nav}.get(area)

    def sign_in(self, identity: Identity) -> None:
        self.session.sign_in(identity)

    def sign_out(self) -> None:
        self.session.sign_out()
        self.dialogs.close_all()
        self.sections.switch("home")
        for nav in (self.track_nav, self.tire_nav, self.build_nav):
            nav.reset()


_WORKSPACES: Dict[str, Tuple[float, Workspace]] = {}
_LOCK = threading.Lock()


def _ttl() -> float:
    try:
        return float(os.environ.get("WORKSPACE_TTL", "3600"))
    except ValueError:
        return 3600.0


def new_workspace_id() -> str:
    return uuid.uuid4().hex


def _evict_expired(now: float) -> None:
    expired = [key for key, (exp, _ws) in _WORKSPACES.items() if exp < now]
    for key in expired:
        _WORKSPACES.pop(key, None)
    if expired:
        logger.info("evicted %d idle workspaces", len(expired))


def get_workspace(workspace_id: str) -> Workspace:
    """Return the workspace for ``workspace_id``, creating it when unknown or expired."""
    now = time.monotonic()
    with _LOCK:
        _evict_expired(now)
        entry = _WORKSPACES.get(workspace_id)
        workspace = entry[1] if entry else Workspace(workspace_id)
        workspace.touched = now
        _WORKSPACES[workspace_id] = (now + _ttl(), workspace)
        return workspace


def drop_workspace(workspace_id: str) -> None:
    with _LOCK:
        _WORKSPACES.pop(workspace_id, None)


def clear_workspaces() -> None:
    with _LOCK:
        _WORKSPACES.clear()
