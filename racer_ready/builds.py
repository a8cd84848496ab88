"""Named snapshots of kart and tire setup values.

Every adjustable field has a stable key in :data:`BUILD_FIELDS`; saved
settings are keyed by it, never by the label shown next to the slider.
Older builds keyed by label are translated when loaded.
"""

import logging
from collections import namedtuple
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from . import datastore
from .datastore import BUILDS, StoreError, where
from .feature import FeatureModule, ListState
from .navigation import BuildPanel, Trigger
from .standings import now_ms, sort_recent_first

logger = logging.getLogger(__name__)

BuildField = namedtuple("BuildField", "key label category tab unit minimum maximum step")

CATEGORY_TITLES = {"kart": "Kart Adjustments", "tire": "Tire Adjustments"}

CATEGORY_TABS = {
    "kart": ("frontend", "rearend", "drivetrain", "weight"),
    "tire": ("tires",),
}

TAB_TITLES = {
    "frontend": "Front End",
    "rearend": "Rear End",
    "drivetrain": "Drivetrain",
    "weight": "Weight",
    "tires": "Tires",
}

BUILD_FIELDS = (
    BuildField("caster", "Caster", "kart", "frontend", "°", 0, 20, 0.5),
    BuildField("camber", "Camber", "kart", "frontend", "°", -3, 3, 0.25),
    BuildField("toe", "Toe", "kart", "frontend", "mm", -5, 5, 0.5),
    BuildField("frontTrackWidth", "Front Track Width", "kart", "frontend", "mm", 1000, 1400, 5),
    BuildField("frontRideHeight", "Front Ride Height", "kart", "frontend", "mm", 20, 60, 1),
    BuildField("rearTrackWidth", "Rear Track Width", "kart", "rearend", "mm", 1200, 1400, 5),
    BuildField("rearRideHeight", "Rear Ride Height", "kart", "rearend", "mm", 20, 60, 1),
    BuildField("hubLength", "Hub Length", "kart", "rearend", "mm", 50, 150, 5),
    BuildField("axleStiffness", "Axle Stiffness", "kart", "rearend", "", None, None, None),
    BuildField("driverSprocket", "Driver Sprocket", "kart", "drivetrain", "T", 9, 13, 1),
    BuildField("axleSprocket", "Axle Sprocket", "kart", "drivetrain", "T", 60, 90, 1),
    BuildField("maxRpm", "Max RPM", "kart", "drivetrain", "RPM", 10000, 16000, 100),
    BuildField("driverWeight", "Driver Weight", "kart", "weight", "kg", 40, 120, 1),
    BuildField("ballast", "Ballast", "kart", "weight", "kg", 0, 30, 0.5),
    BuildField("frontBias", "Front Weight Distribution", "kart", "weight", "%", 38, 48, 0.5),
    BuildField("seatPosition", "Seat Position", "kart", "weight", "", None, None, None),
    BuildField("compound", "Compound", "tire", "tires", "", None, None, None),
    BuildField("frontPressure", "Front Pressure", "tire", "tires", "PSI", 6, 20, 0.5),
    BuildField("rearPressure", "Rear Pressure", "tire", "tires", "PSI", 6, 20, 0.5),
    BuildField("frontTireWidth", "Front Tire Width", "tire", "tires", "mm", 100, 150, 5),
    BuildField("rearTireWidth", "Rear Tire Width", "tire", "tires", "mm", 150, 220, 5),
)

FIELDS_BY_KEY = {f.key: f for f in BUILD_FIELDS}
FIELDS_BY_LABEL = {f.label: f for f in BUILD_FIELDS}

_UNIT_SUFFIX = {
    "T": "T",
    "°": "°",
    "mm": "mm",
    "kg": "kg",
    "RPM": " RPM",
    "PSI": " PSI",
    "%": "% Front",
}


def format_slider_value(build_field: BuildField, value: Any) -> str:
    """Slider readout, e.g. ``"12T"``, ``"2.5°"``, ``"13500 RPM"``, ``"44% Front"``."""
    if value is None or value == "":
        return ""
    return f"{value}{_UNIT_SUFFIX.get(build_field.unit, '')}"


def fields_for_tab(tab: Optional[str]) -> List[BuildField]:
    return [f for f in BUILD_FIELDS if f.tab == tab]


def settings_to_values(settings: Mapping[str, Any]) -> Dict[str, str]:
    """Map a saved settings dict onto field keys, accepting legacy label keys."""
    values: Dict[str, str] = {}
    for name, value in (settings or {}).items():
        build_field = FIELDS_BY_KEY.get(name) or FIELDS_BY_LABEL.get(name)
        if build_field is None or value in (None, ""):
            continue
        values[build_field.key] = str(value)
    return values


@dataclass
class BuildSurface:
    category: Optional[str] = None
    tab: Optional[str] = None
    values: Dict[str, str] = field(default_factory=dict)

    @property
    def title(self) -> str:
        return CATEGORY_TITLES.get(self.category or "", "")

    @property
    def tabs(self) -> tuple:
        return CATEGORY_TABS.get(self.category or "", ())

    def visible_fields(self) -> List[BuildField]:
        return fields_for_tab(self.tab)

    def clear(self) -> None:
        self.values.clear()


class BuildModule(FeatureModule):
    def __init__(self, session, dialogs, nav, store=datastore):
        super().__init__(session, dialogs, nav, store)
        self.surface = BuildSurface()
        self.builds: List[Dict[str, Any]] = []
        self.builds_state = ListState.LOGIN_REQUIRED
        nav.on_enter(BuildPanel.SAVED, self.list_builds)

    def create_new(self) -> bool:
        if not self.nav.fire(Trigger.CREATE_NEW):
            return False
        self.surface = BuildSurface()
        return True

    def pick_category(self, category: str) -> bool:
        if category not in CATEGORY_TABS or not self.nav.fire(Trigger.PICK_CATEGORY):
            return False
        self.surface.category = category
        self.surface.tab = CATEGORY_TABS[category][0]
        self.nav.context.update(category=category, tab=self.surface.tab)
        return True

    def select_tab(self, tab: str) -> bool:
        if self.nav.active is not BuildPanel.SETUP or tab not in self.surface.tabs:
            return False
        self.surface.tab = tab
        self.nav.context["tab"] = tab
        return True

    def update_surface(self, values: Mapping[str, Any]) -> None:
        """Take submitted slider/input values; blanks clear the field, unknown keys are ignored."""
        for key, value in (values or {}).items():
            if key not in FIELDS_BY_KEY:
                continue
            text = "" if value is None else str(value).strip()
            if text:
                self.surface.values[key] = text
            else:
                self.surface.values.pop(key, None)

    def save_build(self) -> Optional[Future]:
        identity = self._identity("Please log in to save builds.")
        if identity is None:
            return None
        answer = self.dialogs.prompt_build_name()

        def _named(fut: Future) -> None:
            name = fut.result()
            if name is None:
                return
            record = {
                "name": name,
                "settings": {k: v for k, v in self.surface.values.items() if v},
                "ownerId": identity.uid,
                "createdAt": now_ms(),
            }
            try:
                build_id = self.store.create(BUILDS, record)
            except StoreError:
                self._failed("Error saving build.")
                return
            logger.info("build %s saved with %d settings", build_id, len(record["settings"]))
            self._success("Build saved successfully!")

        answer.add_done_callback(_named)
        return answer

    def list_builds(self) -> List[Dict[str, Any]]:
        identity = self._identity("Please log in to view saved builds.")
        if identity is None:
            self.builds = []
            self.builds_state = ListState.LOGIN_REQUIRED
            return self.builds
        generation = self.nav.generation
        try:
            found = self.store.query(BUILDS, [where("ownerId", identity.uid)])
        except StoreError:
            self._failed("Error loading builds.")
            if self.nav.is_current(generation):
                self.builds_state = ListState.ERROR
            return self.builds
        if not self.nav.is_current(generation):
            return self.builds
        self.builds = sort_recent_first(found)
        self.builds_state = ListState.READY if self.builds else ListState.EMPTY
        return self.builds

    def show_saved(self) -> bool:
        return self.nav.fire(Trigger.LOAD_SAVED)

    def load_build(self, build_id: str) -> bool:
        identity = self._identity("Please log in to view saved builds.")
        if identity is None:
            return False
        if not self.nav.can_fire(Trigger.LOAD_BUILD):
            return False
        try:
            builds = self.store.query(BUILDS, [where("ownerId", identity.uid)])
        except StoreError:
            self._failed("Error loading builds.")
            return False
        build = next((b for b in builds if b.get("id") == build_id), None)
        if build is None:
            self.dialogs.alert("Build not found!", "Not Found", "❌")
            return False
        self.surface = BuildSurface(values=settings_to_values(build.get("settings") or {}))
        self.nav.fire(Trigger.LOAD_BUILD)
        self._success(f'Build "{build.get("name", "")}" loaded successfully!', "Build Loaded")
        return True

    def delete_build(self, build_id: str) -> Optional[Future]:
        identity = self._identity("Please log in to manage builds.")
        if identity is None:
            return None
        answer = self.dialogs.confirm("Are you sure you want to delete this build?", "Delete Build", "⚠️")

        def _confirmed(fut: Future) -> None:
            if not fut.result():
                return
            try:
                if not self._owns(BUILDS, build_id, identity.uid):
                    return
                self.store.delete(BUILDS, build_id)
            except StoreError:
                self._failed("Error deleting build.")
                return
            self.dialogs.alert("Build deleted successfully!", "Deleted", "🗑️")
            self.list_builds()

        answer.add_done_callback(_confirmed)
        return answer

    def back(self) -> bool:
        return self.nav.fire(Trigger.BACK)
