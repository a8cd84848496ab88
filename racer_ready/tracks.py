"""Tracks, the race days recorded at them, and per-track points standings."""

import logging
from concurrent.futures import Future
from typing import Any, Dict, List, Optional

from . import datastore
from .datastore import DAYS, TRACKS, StoreError, where
from .feature import DAY_FIELDS, FeatureModule, ListState, text_field
from .navigation import TrackPanel, Trigger
from .standings import (
    compute_points_standings,
    format_datetime_input,
    now_ms,
    parse_datetime_input,
    parse_points,
    sort_recent_first,
)

logger = logging.getLogger(__name__)

TRACK_CONDITION_LABELS = (
    ("surfaceCondition", "Surface Condition"),
    ("moistureContent", "Moisture Content"),
    ("gripLevel", "Grip Level"),
    ("groovePosition", "Groove Position"),
    ("surfaceTexture", "Surface Texture"),
)

WEATHER_LABELS = (
    ("airTemperature", "Air Temperature"),
    ("surfaceTemperature", "Surface Temperature"),
    ("humidity", "Humidity"),
    ("timeOfDay", "Time of Day"),
    ("windConditions", "Wind Conditions"),
)


def day_sections(day: Dict[str, Any]):
    """Filled-in fields of a day grouped the way the day view shows them."""
    sections = []
    for heading, labels in (("Track Conditions", TRACK_CONDITION_LABELS), ("Weather Conditions", WEATHER_LABELS)):
        rows = [(label, day.get(key)) for key, label in labels if day.get(key)]
        sections.append((heading, rows))
    return sections


class TrackModule(FeatureModule):
    def __init__(self, session, dialogs, nav, store=datastore):
        super().__init__(session, dialogs, nav, store)
        self.tracks: List[Dict[str, Any]] = []
        self.tracks_state = ListState.LOGIN_REQUIRED
        self.days: List[Dict[str, Any]] = []
        self.days_state = ListState.LOGIN_REQUIRED
        self.standings: Optional[Dict[str, Any]] = None
        self.viewed_day: Optional[Dict[str, Any]] = None
        self.editing_day: Optional[Dict[str, Any]] = None
        nav.on_enter(TrackPanel.HISTORY, self.list_tracks)
        nav.on_enter(TrackPanel.DETAILS, self.list_days)

    @property
    def current_track(self) -> Optional[Dict[str, Any]]:
        return self.nav.context.get("track")

    # -- tracks -----------------------------------------------------------

    def list_tracks(self) -> List[Dict[str, Any]]:
        identity = self.session.identity
        if identity is None:
            self.tracks = []
            self.tracks_state = ListState.LOGIN_REQUIRED
            return self.tracks
        generation = self.nav.generation
        try:
            found = self.store.query(TRACKS, [where("ownerId", identity.uid)])
        except StoreError:
            logger.exception("Error loading tracks for %s", identity.uid)
            if self.nav.is_current(generation):
                self.tracks_state = ListState.ERROR
            return self.tracks
        if not self.nav.is_current(generation):
            logger.debug("discarding stale track list")
            return self.tracks
        self.tracks = sort_recent_first(found)
        self.tracks_state = ListState.READY if self.tracks else ListState.EMPTY
        return self.tracks

    def open_add(self) -> bool:
        return self.nav.fire(Trigger.OPEN_ADD)

    def _name_taken(self, name: str, owner: str, exclude_id: Optional[str] = None) -> bool:
        wanted = name.lower()
        for track in self.tracks:
            if track.get("id") == exclude_id or track.get("ownerId") != owner:
                continue
            if (track.get("name") or "").strip().lower() == wanted:
                return True
        return False

    def add_track(self, name: str, location: str = "") -> Optional[str]:
        identity = self._identity("Please log in to add tracks.")
        if identity is None:
            return None
        name = (name or "").strip()
        if not name:
            self._missing("Please enter a track name.", "Missing Name")
            return None
        # Checked against the loaded list only; a stale list can let a duplicate through
        if self._name_taken(name, identity.uid):
            self._missing("Track already exists.", "Duplicate Track")
            return None
        record = {
            "name": name,
            "location": (location or "").strip(),
            "notes": "",
            "ownerId": identity.uid,
            "createdAt": now_ms(),
        }
        try:
            track_id = self.store.create(TRACKS, record)
        except StoreError:
            self._failed("Error adding track.")
            return None
        logger.info("track %s created for %s", track_id, identity.uid)
        if not self.nav.fire(Trigger.SUBMIT):
            self.list_tracks()
        return track_id

    def delete_track(self, track_id: str) -> Optional[Future]:
        identity = self._identity("Please log in to manage tracks.")
        if identity is None:
            return None
        answer = self.dialogs.confirm("Delete this track?", "Delete Track", "⚠️")

        def _confirmed(fut: Future) -> None:
            if fut.result():
                self._delete_track_cascade(identity.uid, track_id)

        answer.add_done_callback(_confirmed)
        return answer

    def _delete_track_cascade(self, owner: str, track_id: str) -> bool:
        try:
            if not self._owns(TRACKS, track_id, owner):
                logger.warning("refusing to delete track %s not owned by %s", track_id, owner)
                return False
            days = self.store.query(DAYS, [where("trackId", track_id), where("ownerId", owner)])
        except StoreError:
            self._failed("Error deleting track.")
            return False
        result = self.store.fan_out(
            "delete-days", lambda day: self.store.delete(DAYS, day["id"]), days
        )
        if result.failed:
            # The track stays so its remaining days are still reachable
            self.dialogs.alert("Error deleting track.", "Error", "❌")
            self.list_tracks()
            return False
        try:
            self.store.delete(TRACKS, track_id)
        except StoreError:
            self._failed("Error deleting track.")
            return False
        logger.info("track %s deleted with %d days", track_id, result.succeeded)
        self.nav.reset()
        return True

    def load_track(self, track_id: str) -> bool:
        track = next((t for t in self.tracks if t.get("id") == track_id), None)
        if track is None or not self.nav.can_fire(Trigger.LOAD_TRACK):
            return False
        self.nav.context["track"] = track
        self.days = []
        return self.nav.fire(Trigger.LOAD_TRACK)

    # -- days -------------------------------------------------------------

    def list_days(self) -> List[Dict[str, Any]]:
        identity = self.session.identity
        track = self.current_track
        if identity is None:
            self.days = []
            self.days_state = ListState.LOGIN_REQUIRED
            return self.days
        if track is None:
            self.days = []
            self.days_state = ListState.EMPTY
            return self.days
        generation = self.nav.generation
        try:
            found = self.store.query(
                DAYS, [where("trackId", track["id"]), where("ownerId", identity.uid)]
            )
        except StoreError:
            logger.exception("Error loading days for track %s", track["id"])
            if self.nav.is_current(generation):
                self.days_state = ListState.ERROR
            return self.days
        if not self.nav.is_current(generation):
            return self.days
        self.days = sort_recent_first(found)
        self.days_state = ListState.READY if self.days else ListState.EMPTY
        return self.days

    def open_day_entry(self) -> bool:
        return self.nav.fire(Trigger.OPEN_DAY_ENTRY)

    def add_day(self, fields: Dict[str, Any]) -> Optional[Future]:
        """Ask for the race name, then record the day; cancelling saves nothing."""
        identity = self._identity("Please log in to add day entries.")
        if identity is None:
            return None
        track = self.current_track
        if track is None:
            self.dialogs.alert("No track selected.", "Error", "❌")
            return None
        values = {key: text_field(fields, key) for key in DAY_FIELDS}
        points = parse_points(fields.get("pointsEarned") if fields else None)
        answer = self.dialogs.prompt_text("Enter the name of this race/session:", "Race Name", "🏁")

        def _named(fut: Future) -> None:
            race_name = fut.result()
            if race_name is None:
                return
            record = {
                "trackId": track["id"],
                "trackName": track.get("name", ""),
                "raceName": race_name,
                "createdAt": now_ms(),
                "ownerId": identity.uid,
                "pointsEarned": points,
                **values,
            }
            self._create_day(record)

        answer.add_done_callback(_named)
        return answer

    def _create_day(self, record: Dict[str, Any]) -> Optional[str]:
        try:
            day_id = self.store.create(DAYS, record)
        except StoreError:
            self._failed("Error saving day entry.")
            return None
        if not self.nav.fire(Trigger.SAVE):
            self.list_days()
        self._success("Day entry saved successfully!")
        return day_id

    def _fetch_day(self, day_id: str) -> Optional[Dict[str, Any]]:
        identity = self.session.identity
        if identity is None:
            return None
        try:
            day = self.store.get(DAYS, day_id)
        except StoreError:
            self._failed("Error loading day details")
            return None
        if day is None or day.get("ownerId") != identity.uid:
            return None
        return day

    def view_day(self, day_id: str) -> bool:
        if not self.nav.can_fire(Trigger.VIEW_DAY):
            return False
        day = self._fetch_day(day_id)
        if day is None:
            return False
        self.viewed_day = day
        self.nav.context["day"] = day
        return self.nav.fire(Trigger.VIEW_DAY)

    def edit_day(self, day_id: str) -> bool:
        if not self.nav.can_fire(Trigger.EDIT_DAY):
            return False
        day = self._fetch_day(day_id)
        if day is None:
            return False
        self.editing_day = day
        self.nav.context["day"] = day
        return self.nav.fire(Trigger.EDIT_DAY)

    def edit_prefill(self) -> Dict[str, Any]:
        day = self.editing_day or {}
        prefill = {key: day.get(key, "") for key in DAY_FIELDS}
        prefill["raceName"] = day.get("raceName", "")
        prefill["pointsEarned"] = parse_points(day.get("pointsEarned"))
        prefill["timestamp"] = format_datetime_input(day.get("createdAt"))
        return prefill

    def save_day_edit(self, fields: Dict[str, Any], timestamp_input: Optional[str] = None) -> bool:
        """Overwrite the editable fields of the day being edited.

        ``createdAt`` only changes when the submitted date/time differs from
        the value the form was filled with.
        """
        identity = self._identity("Please log in to edit day entries.")
        day = self.editing_day
        if identity is None or day is None:
            return False
        updated = {key: text_field(fields, key) for key in DAY_FIELDS}
        updated["raceName"] = text_field(fields, "raceName")
        updated["pointsEarned"] = parse_points(fields.get("pointsEarned"))
        if timestamp_input and timestamp_input != format_datetime_input(day.get("createdAt")):
            moment = parse_datetime_input(timestamp_input)
            if moment is not None:
                updated["createdAt"] = moment
        try:
            self.store.update(DAYS, day["id"], updated)
        except StoreError:
            self._failed("Error updating day")
            return False
        self.editing_day = None
        self._success("Day updated successfully!")
        if not self.nav.fire(Trigger.SAVE):
            self.list_days()
        return True

    def delete_day(self, day_id: str) -> Optional[Future]:
        identity = self._identity("Please log in to manage day entries.")
        if identity is None:
            return None
        answer = self.dialogs.confirm("Delete this day entry?", "Delete Day", "⚠️")

        def _confirmed(fut: Future) -> None:
            if not fut.result():
                return
            try:
                if not self._owns(DAYS, day_id, identity.uid):
                    return
                self.store.delete(DAYS, day_id)
            except StoreError:
                self._failed("Error deleting day entry.")
                return
            self.list_days()

        answer.add_done_callback(_confirmed)
        return answer

    # -- settings and standings ------------------------------------------

    def open_settings(self) -> bool:
        return self.nav.fire(Trigger.OPEN_SETTINGS)

    def save_track_settings(self, name: str, location: str = "", notes: str = "") -> bool:
        identity = self._identity("Please log in to edit tracks.")
        track = self.current_track
        if identity is None or track is None:
            return False
        name = (name or "").strip()
        if not name:
            self._missing("Please enter a track name.", "Missing Name")
            return False
        if self._name_taken(name, identity.uid, exclude_id=track["id"]):
            self._missing("Track already exists.", "Duplicate Track")
            return False
        changes = {"name": name, "location": (location or "").strip(), "notes": notes or ""}
        try:
            self.store.update(TRACKS, track["id"], changes)
        except StoreError:
            self._failed("Error saving track settings.")
            return False
        track.update(changes)
        self._success("Track settings saved.")
        self.nav.fire(Trigger.BACK)
        return True

    def open_standings(self) -> bool:
        track = self.current_track
        if track is None or not self.nav.fire(Trigger.OPEN_STANDINGS):
            return False
        self.render_points_standings(track["id"])
        return True

    def render_points_standings(self, track_id: str) -> Optional[Dict[str, Any]]:
        identity = self._identity("Please log in to view points standings.")
        if identity is None:
            return None
        try:
            days = self.store.query(DAYS, [where("trackId", track_id), where("ownerId", identity.uid)])
        except StoreError:
            self._failed("Error loading points standings.")
            return None
        self.standings = compute_points_standings(days)
        return self.standings

    def back(self) -> bool:
        return self.nav.fire(Trigger.BACK)
