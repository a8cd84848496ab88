"""Tire sets, the tires in them, and chemical treatment events per tire."""

import logging
from concurrent.futures import Future
from typing import Any, Dict, List, Optional

from . import datastore
from .datastore import TIRE_EVENTS, TIRE_SETS, TIRES, StoreError, where
from .feature import FeatureModule, ListState, text_field
from .navigation import TirePanel, Trigger
from .standings import latest, now_ms, sort_oldest_first, sort_recent_first

logger = logging.getLogger(__name__)

MIN_QUANTITY = 1
MAX_QUANTITY = 4

EVENT_FIELDS = ("outerChemical", "outerAmount", "innerChemical", "innerAmount", "description")


def parse_quantity(value: Any) -> Optional[int]:
    try:
        quantity = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    if MIN_QUANTITY <= quantity <= MAX_QUANTITY:
        return quantity
    return None


class TireModule(FeatureModule):
    def __init__(self, session, dialogs, nav, store=datastore):
        super().__init__(session, dialogs, nav, store)
        self.sets: List[Dict[str, Any]] = []
        self.sets_state = ListState.LOGIN_REQUIRED
        self.tires: List[Dict[str, Any]] = []
        self.tires_state = ListState.LOGIN_REQUIRED
        self.events: List[Dict[str, Any]] = []
        self.events_state = ListState.LOGIN_REQUIRED
        self.viewed_event: Optional[Dict[str, Any]] = None
        self.editing_event: Optional[Dict[str, Any]] = None
        nav.on_enter(TirePanel.HISTORY, self.list_sets)
        nav.on_enter(TirePanel.SET_DETAILS, self.list_tires)
        nav.on_enter(TirePanel.TIRE_DETAILS, self.list_events)

    @property
    def current_set(self) -> Optional[Dict[str, Any]]:
        return self.nav.context.get("tire_set")

    @property
    def current_tire(self) -> Optional[Dict[str, Any]]:
        return self.nav.context.get("tire")

    def _owned(self, collection: str, **equals) -> List[Dict[str, Any]]:
        identity = self.session.require()
        filters = [where(field, value) for field, value in equals.items()]
        filters.append(where("ownerId", identity.uid))
        return self.store.query(collection, filters)

    # -- sets -------------------------------------------------------------

    def list_sets(self) -> List[Dict[str, Any]]:
        if not self.session.is_authenticated:
            self.sets = []
            self.sets_state = ListState.LOGIN_REQUIRED
            return self.sets
        generation = self.nav.generation
        try:
            found = self._owned(TIRE_SETS)
        except StoreError:
            logger.exception("Error loading tire sets")
            if self.nav.is_current(generation):
                self.sets_state = ListState.ERROR
            return self.sets
        if not self.nav.is_current(generation):
            return self.sets
        self.sets = sort_recent_first(found)
        self.sets_state = ListState.READY if self.sets else ListState.EMPTY
        return self.sets

    def open_add_set(self) -> bool:
        return self.nav.fire(Trigger.OPEN_ADD)

    def add_set(self, set_name: str, brand: str = "", model: str = "", quantity: Any = MAX_QUANTITY) -> Optional[str]:
        identity = self._identity("Please log in to add tire sets.")
        if identity is None:
            return None
        set_name = (set_name or "").strip()
        if not set_name:
            self._missing("Please enter a set name.", "Missing Name")
            return None
        count = parse_quantity(quantity)
        if count is None:
            self._missing(
                f"Quantity must be a whole number from {MIN_QUANTITY} to {MAX_QUANTITY}.",
                "Invalid Quantity",
            )
            return None
        record = {
            "setName": set_name,
            "brand": (brand or "").strip(),
            "model": (model or "").strip(),
            "quantity": count,
            "ownerId": identity.uid,
            "createdAt": now_ms(),
        }
        try:
            set_id = self.store.create(TIRE_SETS, record)
        except StoreError:
            self._failed("Error adding tire set.")
            return None
        if not self.nav.fire(Trigger.SUBMIT):
            self.list_sets()
        return set_id

    def delete_set(self, set_id: str) -> Optional[Future]:
        identity = self._identity("Please log in to manage tire sets.")
        if identity is None:
            return None
        answer = self.dialogs.confirm(
            "Delete this tire set and all of its tires?", "Delete Tire Set", "⚠️"
        )

        def _confirmed(fut: Future) -> None:
            if fut.result():
                self._delete_set_cascade(set_id)

        answer.add_done_callback(_confirmed)
        return answer

    def _delete_set_cascade(self, set_id: str) -> bool:
        try:
            if not self._owns(TIRE_SETS, set_id, self.session.require().uid):
                return False
            events = self._owned(TIRE_EVENTS, setId=set_id)
            tires = self._owned(TIRES, setId=set_id)
        except StoreError:
            self._failed("Error deleting tire set.")
            return False
        failed = self.store.fan_out(
            "delete-tire-events", lambda ev: self.store.delete(TIRE_EVENTS, ev["id"]), events
        ).failed
        failed += self.store.fan_out(
            "delete-tires", lambda tire: self.store.delete(TIRES, tire["id"]), tires
        ).failed
        if failed:
            self.dialogs.alert("Error deleting tire set.", "Error", "❌")
            self.list_sets()
            return False
        try:
            self.store.delete(TIRE_SETS, set_id)
        except StoreError:
            self._failed("Error deleting tire set.")
            return False
        self.nav.reset()
        return True

    def load_set(self, set_id: str) -> bool:
        tire_set = next((s for s in self.sets if s.get("id") == set_id), None)
        if tire_set is None or not self.nav.can_fire(Trigger.LOAD_SET):
            return False
        self.nav.context["tire_set"] = tire_set
        self.nav.context.pop("tire", None)
        self.tires = []
        return self.nav.fire(Trigger.LOAD_SET)

    # -- tires ------------------------------------------------------------

    def list_tires(self) -> List[Dict[str, Any]]:
        """Tires of the current set, oldest first, each with its latest event."""
        tire_set = self.current_set
        if not self.session.is_authenticated:
            self.tires = []
            self.tires_state = ListState.LOGIN_REQUIRED
            return self.tires
        if tire_set is None:
            self.tires = []
            self.tires_state = ListState.EMPTY
            return self.tires
        generation = self.nav.generation
        try:
            found = self._owned(TIRES, setId=tire_set["id"])
            events = self._owned(TIRE_EVENTS, setId=tire_set["id"])
        except StoreError:
            logger.exception("Error loading tires for set %s", tire_set["id"])
            if self.nav.is_current(generation):
                self.tires_state = ListState.ERROR
            return self.tires
        if not self.nav.is_current(generation):
            return self.tires
        by_tire: Dict[str, List[Dict[str, Any]]] = {}
        for event in events:
            by_tire.setdefault(event.get("tireId"), []).append(event)
        tires = sort_oldest_first(found)
        for tire in tires:
            tire["latestEvent"] = latest(by_tire.get(tire["id"], []))
        self.tires = tires
        self.tires_state = ListState.READY if tires else ListState.EMPTY
        return self.tires

    def add_tire(self, tire_name: str) -> Optional[str]:
        """Add a tire unless the set already holds ``quantity`` tires.

        The count and the create are separate store calls, so two sessions
        adding at once can both pass the check.
        """
        identity = self._identity("Please log in to add tires.")
        tire_set = self.current_set
        if identity is None:
            return None
        if tire_set is None:
            self.dialogs.alert("No tire set selected.", "Error", "❌")
            return None
        tire_name = (tire_name or "").strip()
        if not tire_name:
            self._missing("Please enter a tire name.", "Missing Name")
            return None
        try:
            existing = self._owned(TIRES, setId=tire_set["id"])
        except StoreError:
            self._failed("Error adding tire.")
            return None
        limit = int(tire_set.get("quantity") or 0)
        if len(existing) >= limit:
            self._missing(
                f"This set already has {limit} tires. Limit reached.", "Limit Reached"
            )
            return None
        record = {
            "tireName": tire_name,
            "setId": tire_set["id"],
            "ownerId": identity.uid,
            "createdAt": now_ms(),
        }
        try:
            tire_id = self.store.create(TIRES, record)
        except StoreError:
            self._failed("Error adding tire.")
            return None
        self.list_tires()
        return tire_id

    def delete_tire(self, tire_id: str) -> Optional[Future]:
        identity = self._identity("Please log in to manage tires.")
        if identity is None:
            return None
        answer = self.dialogs.confirm("Delete this tire and its events?", "Delete Tire", "⚠️")

        def _confirmed(fut: Future) -> None:
            if fut.result():
                self._delete_tire_cascade(tire_id)

        answer.add_done_callback(_confirmed)
        return answer

    def _delete_tire_cascade(self, tire_id: str) -> bool:
        try:
            if not self._owns(TIRES, tire_id, self.session.require().uid):
                return False
            events = self._owned(TIRE_EVENTS, tireId=tire_id)
        except StoreError:
            self._failed("Error deleting tire.")
            return False
        result = self.store.fan_out(
            "delete-tire-events", lambda ev: self.store.delete(TIRE_EVENTS, ev["id"]), events
        )
        if result.failed:
            self.dialogs.alert("Error deleting tire.", "Error", "❌")
            self.list_tires()
            return False
        try:
            self.store.delete(TIRES, tire_id)
        except StoreError:
            self._failed("Error deleting tire.")
            return False
        self.list_tires()
        return True

    def load_tire(self, tire_id: str) -> bool:
        tire = next((t for t in self.tires if t.get("id") == tire_id), None)
        if tire is None or not self.nav.can_fire(Trigger.LOAD_TIRE):
            return False
        self.nav.context["tire"] = tire
        self.events = []
        return self.nav.fire(Trigger.LOAD_TIRE)

    # -- events -----------------------------------------------------------

    def list_events(self) -> List[Dict[str, Any]]:
        tire = self.current_tire
        if not self.session.is_authenticated:
            self.events = []
            self.events_state = ListState.LOGIN_REQUIRED
            return self.events
        if tire is None:
            self.events = []
            self.events_state = ListState.EMPTY
            return self.events
        generation = self.nav.generation
        try:
            found = self._owned(TIRE_EVENTS, tireId=tire["id"])
        except StoreError:
            logger.exception("Error loading events for tire %s", tire["id"])
            if self.nav.is_current(generation):
                self.events_state = ListState.ERROR
            return self.events
        if not self.nav.is_current(generation):
            return self.events
        self.events = sort_recent_first(found)
        self.events_state = ListState.READY if self.events else ListState.EMPTY
        return self.events

    def latest_event(self, tire_id: str) -> Optional[Dict[str, Any]]:
        if not self.session.is_authenticated:
            return None
        try:
            return latest(self._owned(TIRE_EVENTS, tireId=tire_id))
        except StoreError:
            logger.exception("Error loading latest event for tire %s", tire_id)
            return None

    def open_add_event(self) -> bool:
        return self.nav.fire(Trigger.OPEN_ADD_EVENT)

    def add_event(self, fields: Dict[str, Any], apply_to_all: bool = False) -> int:
        """Record a treatment on the current tire, or on every tire of its set.

        All events written by one call share a timestamp. Creates run
        concurrently and best effort; only a total failure is reported.
        Returns how many events were written.
        """
        identity = self._identity("Please log in to add tire events.")
        tire = self.current_tire
        if identity is None:
            return 0
        if tire is None:
            self.dialogs.alert("No tire selected.", "Error", "❌")
            return 0
        payload = {key: text_field(fields, key) for key in EVENT_FIELDS}
        payload.update({"setId": tire.get("setId"), "ownerId": identity.uid, "createdAt": now_ms()})
        targets = [tire]
        if apply_to_all:
            try:
                targets = self._owned(TIRES, setId=tire.get("setId"))
            except StoreError:
                self._failed("Error saving tire event.")
                return 0
        result = self.store.fan_out(
            "add-tire-events",
            lambda target: self.store.create(TIRE_EVENTS, {**payload, "tireId": target["id"]}),
            targets,
        )
        if targets and not result.succeeded:
            self.dialogs.alert("Error saving tire event.", "Error", "❌")
            return 0
        self._success("Tire event saved successfully!")
        if not self.nav.fire(Trigger.SAVE):
            self.list_events()
        return result.succeeded

    def _fetch_event(self, event_id: str) -> Optional[Dict[str, Any]]:
        identity = self.session.identity
        if identity is None:
            return None
        try:
            event = self.store.get(TIRE_EVENTS, event_id)
        except StoreError:
            self._failed("Error loading event details")
            return None
        if event is None or event.get("ownerId") != identity.uid:
            return None
        return event

    def view_event(self, event_id: str) -> bool:
        if not self.nav.can_fire(Trigger.VIEW_EVENT):
            return False
        event = self._fetch_event(event_id)
        if event is None:
            return False
        self.viewed_event = event
        self.nav.context["event"] = event
        return self.nav.fire(Trigger.VIEW_EVENT)

    def edit_event(self, event_id: str) -> bool:
        if not self.nav.can_fire(Trigger.EDIT_EVENT):
            return False
        event = self._fetch_event(event_id)
        if event is None:
            return False
        self.editing_event = event
        self.nav.context["event"] = event
        return self.nav.fire(Trigger.EDIT_EVENT)

    def save_event_edit(self, fields: Dict[str, Any]) -> bool:
        identity = self._identity("Please log in to edit tire events.")
        event = self.editing_event
        if identity is None or event is None:
            return False
        updated = {key: text_field(fields, key) for key in EVENT_FIELDS}
        try:
            self.store.update(TIRE_EVENTS, event["id"], updated)
        except StoreError:
            self._failed("Error updating tire event")
            return False
        self.editing_event = None
        self._success("Tire event updated successfully!")
        if not self.nav.fire(Trigger.SAVE):
            self.list_events()
        return True

    def delete_event(self, event_id: str) -> Optional[Future]:
        identity = self._identity("Please log in to manage tire events.")
        if identity is None:
            return None
        answer = self.dialogs.confirm("Delete this tire event?", "Delete Event", "⚠️")

        def _confirmed(fut: Future) -> None:
            if not fut.result():
                return
            try:
                if not self._owns(TIRE_EVENTS, event_id, identity.uid):
                    return
                self.store.delete(TIRE_EVENTS, event_id)
            except StoreError:
                self._failed("Error deleting tire event.")
                return
            self.list_events()

        answer.add_done_callback(_confirmed)
        return answer

    def back(self) -> bool:
        return self.nav.fire(Trigger.BACK)
