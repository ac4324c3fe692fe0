"""Canonical exclusion pairs for a Secret Santa round.

Exclusions are stored on the round as a JSON list of
``{"user_id": ..., "excluded_user_id": ...}`` objects. Clients have sent them
under several key spellings and sometimes as a JSON string, so everything goes
through :meth:`ExclusionSet.normalize` before it is compared, stored or handed
to the pairing search.
"""
from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, FrozenSet, Iterator, List, Optional, Tuple

from loguru import logger

USER_KEYS = ("userid", "user", "giveruserid", "giverid", "giver", "from", "a")
EXCLUDED_KEYS = (
    "excludeduserid",
    "excludedid",
    "excluded",
    "recipientuserid",
    "recipientid",
    "recipient",
    "to",
    "b",
)
CONTAINER_KEYS = ("exclusions", "exclusionpairs", "pairs")


@dataclass(frozen=True, order=True)
class ExclusionPair:
    user_id: str
    excluded_user_id: str

    @classmethod
    def between(cls, first: str, second: str) -> "ExclusionPair":
        low, high = sorted((first, second))
        return cls(user_id=low, excluded_user_id=high)

    @property
    def members(self) -> FrozenSet[str]:
        return frozenset((self.user_id, self.excluded_user_id))

    def as_dict(self) -> dict:
        return {"user_id": self.user_id, "excluded_user_id": self.excluded_user_id}


def _key(name: Any) -> str:
    return str(name).lower().replace("_", "").replace("-", "")


def _coerce_id(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (dict, list, tuple, set)):
        return None
    text = str(value).strip()
    return text or None


def _lookup(item: Mapping, keys: Tuple[str, ...]) -> Any:
    folded = {_key(name): value for name, value in item.items()}
    for key in keys:
        if key in folded:
            return folded[key]
    return None


def _extract_pair(item: Any) -> Optional[Tuple[str, str]]:
    if isinstance(item, ExclusionPair):
        return item.user_id, item.excluded_user_id
    if isinstance(item, Mapping):
        first, second = _lookup(item, USER_KEYS), _lookup(item, EXCLUDED_KEYS)
    elif isinstance(item, (list, tuple)) and len(item) == 2:
        first, second = item
    else:
        return None
    first_id, second_id = _coerce_id(first), _coerce_id(second)
    if first_id is None or second_id is None:
        return None
    return first_id, second_id


def _iter_raw(raw: Any) -> List[Any]:
    if raw is None:
        return []
    if isinstance(raw, ExclusionSet):
        return list(raw)
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        if not raw.strip():
            return []
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.debug("Ignoring unparseable exclusion payload")
            return []
        return _iter_raw(raw)
    if isinstance(raw, Mapping):
        nested = _lookup(raw, CONTAINER_KEYS)
        if nested is not None:
            return _iter_raw(nested)
        return [raw]
    if isinstance(raw, Iterable):
        return list(raw)
    return []


class ExclusionSet:
    """Immutable, sorted, deduplicated set of unordered exclusion pairs."""

    __slots__ = ("_pairs", "_index")

    def __init__(self, pairs: Iterable[ExclusionPair] = ()) -> None:
        self._pairs: Tuple[ExclusionPair, ...] = tuple(sorted(set(pairs)))
        self._index = frozenset(pair.members for pair in self._pairs)

    @classmethod
    def normalize(cls, raw: Any, allowed_ids: Optional[Iterable[Any]] = None) -> "ExclusionSet":
        allowed = {_coerce_id(value) for value in allowed_ids or ()} - {None}
        pairs = set()
        for item in _iter_raw(raw):
            extracted = _extract_pair(item)
            if extracted is None:
                continue
            first, second = extracted
            if first == second:
                continue
            if allowed and (first not in allowed or second not in allowed):
                continue
            pairs.add(ExclusionPair.between(first, second))
        return cls(pairs)

    def restricted_to(self, allowed_ids: Iterable[Any]) -> "ExclusionSet":
        return ExclusionSet.normalize(self._pairs, allowed_ids)

    def forbids(self, giver_id: str, recipient_id: str) -> bool:
        return frozenset((giver_id, recipient_id)) in self._index

    def to_payload(self) -> List[dict]:
        return [pair.as_dict() for pair in self._pairs]

    def __iter__(self) -> Iterator[ExclusionPair]:
        return iter(self._pairs)

    def __len__(self) -> int:
        return len(self._pairs)

    def __bool__(self) -> bool:
        return bool(self._pairs)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ExclusionSet):
            return NotImplemented
        return self._pairs == other._pairs

    def __hash__(self) -> int:
        return hash(self._pairs)

    def __repr__(self) -> str:
        return f"<ExclusionSet({len(self._pairs)} pairs)>"


def normalize_exclusions(raw: Any, allowed_ids: Optional[Iterable[Any]] = None) -> ExclusionSet:
    return ExclusionSet.normalize(raw, allowed_ids)


def exclusions_equal(first: Any, second: Any) -> bool:
    """Structural equality of two exclusion lists, raw or canonical."""
    return ExclusionSet.normalize(first) == ExclusionSet.normalize(second)
