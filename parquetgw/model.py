"""Label sets, label matchers and query hints."""

from __future__ import annotations

import dataclasses
import enum
import functools
import json
import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field


@functools.total_ordering
@dataclass(frozen=True, init=False)
class Labels:
    """An immutable set of label name/value pairs, kept sorted by name."""

    pairs: tuple[tuple[str, str], ...]

    def __init__(self, pairs: Mapping[str, str] | Iterable[tuple[str, str]] = ()) -> None:
        items = pairs.items() if isinstance(pairs, Mapping) else pairs
        object.__setattr__(self, "pairs", tuple(sorted(dict(items).items())))

    @classmethod
    def from_map(cls, mapping: Mapping[str, str]) -> Labels:
        return cls(mapping)

    def get(self, name: str) -> str:
        """The value of ``name``, or the empty string when the label is absent."""
        for label_name, value in self.pairs:
            if label_name == name:
                return value
        return ""

    def to_dict(self) -> dict[str, str]:
        return dict(self.pairs)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Labels):
            return NotImplemented
        return self.pairs < other.pairs

    def __len__(self) -> int:
        return len(self.pairs)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self.pairs)

    def __str__(self) -> str:
        body = ", ".join(
            f"{name}={json.dumps(value, ensure_ascii=False)}" for name, value in self.pairs
        )
        return "{" + body + "}"


class MatchType(enum.Enum):
    EQUAL = "="
    NOT_EQUAL = "!="
    REGEXP = "=~"
    NOT_REGEXP = "!~"


@dataclass(frozen=True)
class Matcher:
    """Matches the value of one label; regular expressions are fully anchored."""

    type: MatchType
    name: str
    value: str
    _pattern: re.Pattern[str] | None = field(
        init=False, repr=False, compare=False, default=None
    )

    def __post_init__(self) -> None:
        if self.type in (MatchType.REGEXP, MatchType.NOT_REGEXP):
            try:
                pattern = re.compile(f"(?s:{self.value})")
            except re.error as err:
                raise ValueError(f"invalid regular expression {self.value!r}: {err}") from err
            object.__setattr__(self, "_pattern", pattern)

    def matches(self, value: str) -> bool:
        if self.type is MatchType.EQUAL:
            return value == self.value
        if self.type is MatchType.NOT_EQUAL:
            return value != self.value
        assert self._pattern is not None
        found = self._pattern.fullmatch(value) is not None
        return found if self.type is MatchType.REGEXP else not found

    def __str__(self) -> str:
        return f"{self.name}{self.type.value}{json.dumps(self.value, ensure_ascii=False)}"


@dataclass
class SelectHints:
    """Hints passed along with a select call."""

    limit: int = 0
    func: str = ""
    by: bool = False
    grouping: list[str] = field(default_factory=list)
    projection_labels: list[str] = field(default_factory=list)
    projection_include: bool = False

    def copy(self) -> SelectHints:
        """A copy that shares no mutable state with this one."""
        return dataclasses.replace(
            self,
            grouping=list(self.grouping),
            projection_labels=list(self.projection_labels),
        )


@dataclass
class LabelHints:
    """Hints passed along with label name and value lookups."""

    limit: int = 0