"""Non-fatal query warnings and the annotation set that carries them."""

from __future__ import annotations

from collections.abc import Iterable, Iterator


class QueryWarning(Exception):
    """A problem worth reporting that does not fail a query."""


ERROR_TRUNCATED_RESPONSE = QueryWarning("results truncated due to limit")
ERROR_DROPPED_SERIES_AFTER_EXTERNAL_LABEL_MANGLING = QueryWarning(
    "dropped series after external label mangling"
)
ERROR_DROPPED_LABEL_VALUES_AFTER_EXTERNAL_LABEL_MANGLING = QueryWarning(
    "dropped label values after external label mangling"
)


class Annotations:
    """A set of warnings keyed by their message, in insertion order."""

    def __init__(self, errors: Iterable[BaseException] = ()) -> None:
        self._errors: dict[str, BaseException] = {}
        for err in errors:
            self.add(err)

    def add(self, err: BaseException) -> Annotations:
        self._errors[str(err)] = err
        return self

    def merge(self, other: Annotations | None) -> Annotations:
        if other is not None:
            self._errors.update(other._errors)
        return self

    def as_errors(self) -> list[BaseException]:
        return list(self._errors.values())

    def __len__(self) -> int:
        return len(self._errors)

    def __iter__(self) -> Iterator[BaseException]:
        return iter(list(self._errors.values()))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Annotations):
            return NotImplemented
        return self._errors.keys() == other._errors.keys()

    def __repr__(self) -> str:
        return f"Annotations({list(self._errors)!r})"