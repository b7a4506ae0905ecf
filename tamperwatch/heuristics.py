"""
False-positive heuristics.

Each heuristic looks at a single Difference and decides whether it is very
likely a rendering artifact rather than injected content. A difference is
discarded as soon as any registered heuristic claims it.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional, Sequence

from .treediff import Difference, DifferenceKind, NodeDetail

BLACKLISTED_KEYWORDS = ("style", "class", "width", "height", "sizset", "sizcache", "alt")


def _same_path(first: Optional[str], second: Optional[str]) -> bool:
    return (first or "").lower() == (second or "").lower()


class Heuristic(ABC):
    """
    A pure predicate over a Difference.

    Subclasses set ``kinds`` to the difference kinds they apply to (None
    means every kind) and implement ``matches``.
    """

    name = "heuristic"
    kinds: Optional[frozenset] = None

    def classify(self, difference: Difference) -> bool:
        if self.kinds is not None and difference.kind not in self.kinds:
            return False
        return self.matches(difference)

    @abstractmethod
    def matches(self, difference: Difference) -> bool:
        ...

    def __repr__(self):
        return f"{type(self).__name__}(name={self.name!r})"


class BlacklistedNameHeuristic(Heuristic):
    """
    Layout and caching attributes (style, class, width, ...) change between
    renders. Claims the difference when either node's value is one of the
    keywords or either node's path ends with one.
    """

    name = "blacklisted-name"

    def __init__(self, keywords: Iterable[str] = BLACKLISTED_KEYWORDS):
        self.keywords = tuple(keywords)

    def _on_keyword(self, detail: NodeDetail) -> bool:
        value = detail.value.lower() if detail.value is not None else None
        for keyword in self.keywords:
            if value == keyword.lower():
                return True
            if detail.path is not None and detail.path.endswith(keyword):
                return True
        return False

    def matches(self, difference: Difference) -> bool:
        return self._on_keyword(difference.control) or self._on_keyword(difference.test)


class CrossPathHeuristic(Heuristic):
    """
    The walk sometimes pairs nodes that moved, so an attribute or text
    compared at two different locations is an alignment artifact.
    """

    name = "cross-path"
    kinds = frozenset(
        {DifferenceKind.ATTR_NAME_NOT_FOUND, DifferenceKind.ATTR_VALUE, DifferenceKind.TEXT_VALUE}
    )

    def matches(self, difference: Difference) -> bool:
        return not _same_path(difference.control.path, difference.test.path)


class NonScriptTextHeuristic(Heuristic):
    """
    Injections of interest land in script bodies; text changes elsewhere
    (counters, dates, spans) are noise. A node without a known parent counts
    as outside a script.
    """

    name = "non-script-text"
    kinds = frozenset({DifferenceKind.TEXT_VALUE})

    def __init__(self, parent: str = "script"):
        self.parent = parent

    def _outside(self, detail: NodeDetail) -> bool:
        if detail.parent_name is None:
            return True
        return detail.parent_name.lower() != self.parent.lower()

    def matches(self, difference: Difference) -> bool:
        return self._outside(difference.control) and self._outside(difference.test)


class InputValueHeuristic(Heuristic):
    """Form field values change with user and browser interaction."""

    name = "input-value"
    kinds = frozenset({DifferenceKind.ATTR_VALUE})

    def matches(self, difference: Difference) -> bool:
        path = difference.test.path
        if path is None or not path.endswith("@value"):
            return False
        steps = path.split("/")
        return len(steps) >= 2 and steps[-2].startswith("input")


DEFAULT_HEURISTICS: Sequence[Heuristic] = (
    BlacklistedNameHeuristic(),
    CrossPathHeuristic(),
    NonScriptTextHeuristic(),
    InputValueHeuristic(),
)


def is_false_positive(difference: Difference, heuristics: Sequence[Heuristic] = DEFAULT_HEURISTICS) -> bool:
    return claimed_by(difference, heuristics) is not None


def claimed_by(difference: Difference, heuristics: Sequence[Heuristic] = DEFAULT_HEURISTICS) -> Optional[str]:
    """Name of the first heuristic that claims ``difference``, if any."""
    for h in heuristics:
        if h.classify(difference):
            return h.name
    return None
