#!/usr/bin/env python3
"""
Create the document table and load a JSON export of the logbook into PostgreSQL.

The export is a mapping ``{collection: {id: document}}``. Documents written by
the old browser client carry ``userId`` and ``timestamp``; they are renamed to
``ownerId`` and ``createdAt`` (epoch milliseconds) on the way in.
"""
import json
import os
import sys
from datetime import datetime

from racer_ready import datastore_pg
from racer_ready.datastore import (
    ACCOUNTS,
    BUILDS,
    DAYS,
    TIRE_EVENTS,
    TIRE_SETS,
    TIRES,
    TRACKS,
    USERS,
)

COLLECTIONS = (TRACKS, DAYS, TIRE_SETS, TIRES, TIRE_EVENTS, BUILDS, USERS, ACCOUNTS)


def _to_millis(value):
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str) and value:
        try:
            return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000)
        except ValueError:
            return None
    return None


def normalise(doc):
    """Rename legacy client fields; everything else is kept as exported."""
    out = dict(doc or {})
    out.pop("id", None)
    if "userId" in out and "ownerId" not in out:
        out["ownerId"] = out.pop("userId")
    if "timestamp" in out and "createdAt" not in out:
        millis = _to_millis(out.pop("timestamp"))
        if millis is not None:
            out["createdAt"] = millis
    return out


def load_export(path):
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError("export must be a JSON object keyed by collection name")
    return data


def migrate(data):
    """Import every known collection; returns ``{collection: count}``."""
    counts = {}
    for collection in COLLECTIONS:
        docs = data.get(collection) or {}
        if isinstance(docs, list):
            docs = {d["id"]: d for d in docs if isinstance(d, dict) and d.get("id")}
        counts[collection] = datastore_pg.import_documents(
            collection, {doc_id: normalise(body) for doc_id, body in docs.items()}
        )
    skipped = sorted(set(data) - set(COLLECTIONS))
    if skipped:
        print(f"Skipping unknown collections: {', '.join(skipped)}")
    return counts


def main(argv=None):
    """Main migration function"""
    argv = sys.argv[1:] if argv is None else argv
    if not os.environ.get('DATABASE_URL'):
        print("ERROR: DATABASE_URL environment variable not set")
        return 1

    datastore_pg.ensure_schema()
    print("Document schema ready")
    if not argv:
        return 0

    path = argv[0]
    print(f"Loading data from {path}...")
    counts = migrate(load_export(path))

    print("\nMigration completed successfully!")
    print("\nSummary:")
    for collection, count in counts.items():
        print(f"- {count} {collection}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
