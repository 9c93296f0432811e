"""
Version Comparison

Maven-style version ordering used when the dependency graph has to pick one of
several requested versions of the same library.
"""

import re
from functools import total_ordering
from typing import List, Tuple

# Qualifier ordering follows Maven's ComparableVersion
QUALIFIER_RANKS = {
    "alpha": 1, "a": 1,
    "beta": 2, "b": 2,
    "milestone": 3, "m": 3,
    "rc": 4, "cr": 4,
    "snapshot": 5,
    "": 6, "ga": 6, "final": 6, "release": 6,
    "sp": 7,
}
UNKNOWN_QUALIFIER_RANK = 8

_TOKEN_PATTERN = re.compile(r"\d+|[a-z]+")

Item = Tuple[int, int, str]


def _item(token: str) -> Item:
    if token.isdigit():
        return (2, int(token), "")
    return (1, QUALIFIER_RANKS.get(token, UNKNOWN_QUALIFIER_RANK), token)


def _is_null(item: Item) -> bool:
    return item == (2, 0, "") or (item[0] == 1 and item[1] == QUALIFIER_RANKS["release"])


def parse_items(version: str) -> List[Item]:
    """
    Split a version string into comparable items

    Each '-' separated group is tokenized on dots and digit/letter transitions;
    trailing zeros and release qualifiers are dropped per group so that
    '1.0', '1' and '1.0.0-final' compare equal.
    """
    items: List[Item] = []
    for group in version.lower().split("-"):
        group_items = [_item(token) for token in _TOKEN_PATTERN.findall(group)]
        while group_items and _is_null(group_items[-1]):
            group_items.pop()
        items.extend(group_items)
    return items


@total_ordering
class MavenVersion:
    """Comparable wrapper around a version string"""

    PADDING: Item = (1, QUALIFIER_RANKS["release"], "")

    def __init__(self, version: str):
        self.version = version
        self.items = tuple(parse_items(version))

    def _compare(self, other: "MavenVersion") -> int:
        length = max(len(self.items), len(other.items))
        for index in range(length):
            mine = self.items[index] if index < len(self.items) else self.PADDING
            theirs = other.items[index] if index < len(other.items) else self.PADDING
            if mine != theirs:
                return -1 if mine < theirs else 1
        return 0

    def __eq__(self, other) -> bool:
        if not isinstance(other, MavenVersion):
            return NotImplemented
        return self._compare(other) == 0

    def __lt__(self, other) -> bool:
        if not isinstance(other, MavenVersion):
            return NotImplemented
        return self._compare(other) < 0

    def __hash__(self) -> int:
        return hash(self.items)

    def __repr__(self) -> str:
        return f"MavenVersion({self.version!r})"

    def __str__(self) -> str:
        return self.version

    @property
    def is_snapshot(self) -> bool:
        return self.version.upper().endswith("-SNAPSHOT")


def highest(versions: List[str]) -> str:
    """Return the highest of several version strings (first wins on ties)"""
    best = versions[0]
    for candidate in versions[1:]:
        if MavenVersion(candidate) > MavenVersion(best):
            best = candidate
    return best
