"""
Coercion of assigned-technician collections.

Assignments created by older clients stored technician ids as a single id,
a comma separated string, a PostgreSQL array literal ("{3,7}") or a JSON
array. Everything is normalised here into a set of ints so that business
logic only ever sees one representation.
"""
import json
import logging
from typing import Any, Iterable, Set

logger = logging.getLogger(__name__)


def _coerce_one(value: Any, into: Set[int]):
    if value is None or isinstance(value, bool):
        return
    if isinstance(value, int):
        into.add(value)
        return
    text = str(value).strip().strip('"').strip("'")
    if not text:
        return
    try:
        into.add(int(text))
    except ValueError:
        logger.debug(f"Dropping unparseable technician id {value!r}")


def coerce_technician_ids(raw: Any) -> Set[int]:
    """Parse any stored technician-id representation into a set of ints.

    Malformed input never raises; unparseable members are dropped.
    """
    ids: Set[int] = set()
    if raw is None:
        return ids

    if isinstance(raw, (set, frozenset, list, tuple)):
        for item in raw:
            _coerce_one(item, ids)
        return ids

    if isinstance(raw, int) and not isinstance(raw, bool):
        ids.add(raw)
        return ids

    text = str(raw).strip()
    if not text:
        return ids

    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            for item in parsed:
                _coerce_one(item, ids)
            return ids
        text = text.strip("[]")

    # PostgreSQL array literal
    if text.startswith("{") and text.endswith("}"):
        text = text[1:-1]

    for token in text.split(","):
        _coerce_one(token, ids)
    return ids


def serialize_technician_ids(ids: Iterable[int]) -> str:
    return json.dumps(sorted(coerce_technician_ids(list(ids))))
