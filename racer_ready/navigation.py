"""Panel state machines for the track, tire and build areas.

Each area is a :class:`NavigationStack`: an explicit panel enum, a
transition table keyed by ``(panel, trigger)`` and a parent table that the
``back`` trigger walks. Anything not in the tables is refused. Nothing here
knows about HTML; the web layer renders whatever panel is active.
"""

import logging
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


class Trigger(str, Enum):
    OPEN_ADD = "openAdd"
    SUBMIT = "submit"
    LOAD_TRACK = "loadTrack"
    OPEN_DAY_ENTRY = "openDayEntry"
    SAVE = "save"
    OPEN_SETTINGS = "openSettings"
    OPEN_STANDINGS = "openStandings"
    VIEW_DAY = "viewDay"
    EDIT_DAY = "editDay"
    LOAD_SET = "loadSet"
    LOAD_TIRE = "loadTire"
    OPEN_ADD_EVENT = "openAddEvent"
    VIEW_EVENT = "viewEvent"
    EDIT_EVENT = "editEvent"
    CREATE_NEW = "createNew"
    PICK_CATEGORY = "pickCategory"
    LOAD_SAVED = "loadSaved"
    LOAD_BUILD = "loadBuild"
    BACK = "back"


class TrackPanel(str, Enum):
    HISTORY = "history"
    ADD_TRACK = "addTrack"
    DETAILS = "details"
    DAY_ENTRY = "dayEntry"
    TRACK_SETTINGS = "trackSettings"
    POINTS_STANDINGS = "pointsStandings"
    VIEW_DAY = "viewDay"
    EDIT_DAY = "editDay"


class TirePanel(str, Enum):
    HISTORY = "history"
    ADD_SET = "addSet"
    SET_DETAILS = "setDetails"
    TIRE_DETAILS = "tireDetails"
    ADD_EVENT = "addEvent"
    VIEW_EVENT = "viewEvent"
    EDIT_EVENT = "editEvent"


class BuildPanel(str, Enum):
    CHOICE = "choice"
    CATEGORY = "category"
    SETUP = "setup"
    SAVED = "saved"


class Section(str, Enum):
    HOME = "home"
    TRACKS = "tracks"
    TIRES = "tires"
    BUILD = "build"
    PROFILE = "profile"


Transitions = Mapping[Tuple[Enum, Trigger], Enum]
Parents = Mapping[Enum, Enum]

TRACK_TRANSITIONS: Transitions = {
    (TrackPanel.HISTORY, Trigger.OPEN_ADD): TrackPanel.ADD_TRACK,
    (TrackPanel.ADD_TRACK, Trigger.SUBMIT): TrackPanel.HISTORY,
    (TrackPanel.HISTORY, Trigger.LOAD_TRACK): TrackPanel.DETAILS,
    (TrackPanel.DETAILS, Trigger.OPEN_DAY_ENTRY): TrackPanel.DAY_ENTRY,
    (TrackPanel.DAY_ENTRY, Trigger.SAVE): TrackPanel.DETAILS,
    (TrackPanel.DETAILS, Trigger.OPEN_SETTINGS): TrackPanel.TRACK_SETTINGS,
    (TrackPanel.DETAILS, Trigger.OPEN_STANDINGS): TrackPanel.POINTS_STANDINGS,
    (TrackPanel.DETAILS, Trigger.VIEW_DAY): TrackPanel.VIEW_DAY,
    (TrackPanel.DETAILS, Trigger.EDIT_DAY): TrackPanel.EDIT_DAY,
    (TrackPanel.EDIT_DAY, Trigger.SAVE): TrackPanel.DETAILS,
}

TRACK_PARENTS: Parents = {
    TrackPanel.ADD_TRACK: TrackPanel.HISTORY,
    TrackPanel.DETAILS: TrackPanel.HISTORY,
    TrackPanel.DAY_ENTRY: TrackPanel.DETAILS,
    TrackPanel.TRACK_SETTINGS: TrackPanel.DETAILS,
    TrackPanel.POINTS_STANDINGS: TrackPanel.DETAILS,
    TrackPanel.VIEW_DAY: TrackPanel.DETAILS,
    TrackPanel.EDIT_DAY: TrackPanel.DETAILS,
}

TIRE_TRANSITIONS: Transitions = {
    (TirePanel.HISTORY, Trigger.OPEN_ADD): TirePanel.ADD_SET,
    (TirePanel.ADD_SET, Trigger.SUBMIT): TirePanel.HISTORY,
    (TirePanel.HISTORY, Trigger.LOAD_SET): TirePanel.SET_DETAILS,
    (TirePanel.SET_DETAILS, Trigger.LOAD_TIRE): TirePanel.TIRE_DETAILS,
    (TirePanel.TIRE_DETAILS, Trigger.OPEN_ADD_EVENT): TirePanel.ADD_EVENT,
    (TirePanel.ADD_EVENT, Trigger.SAVE): TirePanel.TIRE_DETAILS,
    (TirePanel.TIRE_DETAILS, Trigger.VIEW_EVENT): TirePanel.VIEW_EVENT,
    (TirePanel.TIRE_DETAILS, Trigger.EDIT_EVENT): TirePanel.EDIT_EVENT,
    (TirePanel.EDIT_EVENT, Trigger.SAVE): TirePanel.TIRE_DETAILS,
}

TIRE_PARENTS: Parents = {
    TirePanel.ADD_SET: TirePanel.HISTORY,
    TirePanel.SET_DETAILS: TirePanel.HISTORY,
    TirePanel.TIRE_DETAILS: TirePanel.SET_DETAILS,
    TirePanel.ADD_EVENT: TirePanel.TIRE_DETAILS,
    TirePanel.VIEW_EVENT: TirePanel.TIRE_DETAILS,
    TirePanel.EDIT_EVENT: TirePanel.TIRE_DETAILS,
}

BUILD_TRANSITIONS: Transitions = {
    (BuildPanel.CHOICE, Trigger.CREATE_NEW): BuildPanel.CATEGORY,
    (BuildPanel.CATEGORY, Trigger.PICK_CATEGORY): BuildPanel.SETUP,
    (BuildPanel.CHOICE, Trigger.LOAD_SAVED): BuildPanel.SAVED,
    (BuildPanel.SAVED, Trigger.LOAD_BUILD): BuildPanel.CATEGORY,
}

BUILD_PARENTS: Parents = {
    BuildPanel.CATEGORY: BuildPanel.CHOICE,
    BuildPanel.SETUP: BuildPanel.CATEGORY,
    BuildPanel.SAVED: BuildPanel.CHOICE,
}


class NavigationStack:
    """One area's panels; exactly one is active at a time."""

    def __init__(self, name: str, initial: Enum, transitions: Transitions, parents: Parents):
        self.name = name
        self.initial = initial
        self.transitions = dict(transitions)
        self.parents = dict(parents)
        self.active = initial
        self.context: Dict[str, object] = {}
        self.generation = 0
        self._hooks: Dict[Enum, List[Callable[[], None]]] = {}

    def on_enter(self, panel: Enum, callback: Callable[[], None]) -> None:
        self._hooks.setdefault(panel, []).append(callback)

    def target(self, trigger: Trigger) -> Optional[Enum]:
        if trigger is Trigger.BACK:
            return self.parents.get(self.active)
        return self.transitions.get((self.active, trigger))

    def can_fire(self, trigger: Trigger) -> bool:
        return self.target(trigger) is not None

    def fire(self, trigger: Trigger) -> bool:
        """Move along a documented edge; anything else is refused and changes nothing."""
        nxt = self.target(trigger)
        if nxt is None:
            logger.debug("%s: no edge from %s on %s", self.name, self.active.value, trigger.value)
            return False
        self._activate(nxt)
        return True

    def reset(self) -> None:
        self.context.clear()
        self._activate(self.initial)

    def is_current(self, generation: int) -> bool:
        return generation == self.generation

    def _activate(self, panel: Enum) -> None:
        self.active = panel
        self.generation += 1
        for callback in self._hooks.get(panel, []):
            callback()


def track_stack() -> NavigationStack:
    return NavigationStack("tracks", TrackPanel.HISTORY, TRACK_TRANSITIONS, TRACK_PARENTS)


def tire_stack() -> NavigationStack:
    return NavigationStack("tires", TirePanel.HISTORY, TIRE_TRANSITIONS, TIRE_PARENTS)


def build_stack() -> NavigationStack:
    return NavigationStack("build", BuildPanel.CHOICE, BUILD_TRANSITIONS, BUILD_PARENTS)


def parse_trigger(value: str) -> Optional[Trigger]:
    try:
        return Trigger(value)
    except ValueError:
        return None


class SectionSwitcher:
    """Sidebar sections; entering an area starts its stack from the top."""

    def __init__(self, stacks: Mapping[str, NavigationStack]):
        self.stacks = dict(stacks)
        self.active = Section.HOME

    def switch(self, name: str) -> bool:
        try:
            section = Section(name)
        except ValueError:
            return False
        self.active = section
        stack = self.stacks.get(section.value)
        if stack is not None:
            stack.reset()
        return True
