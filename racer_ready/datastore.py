"""Store gateway used by the feature modules.

Every call delegates to ``datastore_pg`` at call time, so tests can swap the
PostgreSQL functions for in-memory ones. Backend failures surface as
:class:`StoreError`; nothing here retries.
"""

import logging
import os
from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, Iterable, List, Optional

import psycopg2

from . import datastore_pg as _pg

logger = logging.getLogger(__name__)

TRACKS = "tracks"
DAYS = "days"
TIRE_SETS = "tireSets"
TIRES = "tires"
TIRE_EVENTS = "tireEvents"
BUILDS = "builds"
USERS = "users"
ACCOUNTS = "accounts"

Filter = namedtuple("Filter", "field op value")
FanOutResult = namedtuple("FanOutResult", "succeeded failed")


class StoreError(Exception):
    """A store call was rejected (network, permission or SQL failure)."""


class DocumentNotFound(StoreError):
    """The addressed document does not exist."""


def where(field: str, value: Any) -> Filter:
    return Filter(field, "==", value)


def _call(fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except psycopg2.Error as exc:
        raise StoreError(str(exc).strip() or exc.__class__.__name__) from exc


def create(collection: str, record: Dict[str, Any]) -> str:
    return _call(_pg.create, collection, dict(record))


def query(collection: str, filters: Iterable[Filter] = ()) -> List[Dict[str, Any]]:
    return _call(_pg.query, collection, [tuple(f) for f in filters])


def get(collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
    return _call(_pg.get, collection, doc_id)


def update(collection: str, doc_id: str, partial: Dict[str, Any]) -> None:
    if not _call(_pg.update, collection, doc_id, dict(partial)):
        raise DocumentNotFound(f"{collection}/{doc_id} does not exist")


def set_doc(collection: str, doc_id: str, record: Dict[str, Any], merge: bool = False) -> None:
    _call(_pg.set_doc, collection, doc_id, dict(record), merge=merge)


def delete(collection: str, doc_id: str) -> None:
    _call(_pg.delete, collection, doc_id)


def _fanout_workers() -> int:
    try:
        return max(1, int(os.environ.get("FANOUT_WORKERS", "8")))
    except ValueError:
        return 8


def fan_out(label: str, fn: Callable[[Any], Any], items: Iterable[Any]) -> FanOutResult:
    """Run ``fn(item)`` for every item concurrently, best effort.

    Every call is attempted regardless of the others. Failures are logged and
    counted, never rolled back.
    """
    items = list(items)
    if not items:
        return FanOutResult(0, 0)
    succeeded = failed = 0
    with ThreadPoolExecutor(max_workers=min(_fanout_workers(), len(items))) as pool:
        futures = {pool.submit(fn, item): item for item in items}
        for fut in as_completed(futures):
            try:
                fut.result()
                succeeded += 1
            except StoreError:
                failed += 1
                logger.exception("fanout %s call failed for %r", label, futures[fut])
    logger.info("fanout %s ok=%d failed=%d", label, succeeded, failed)
    return FanOutResult(succeeded, failed)
