"""
Difference reconciliation.

Compares a target rendering against a base rendering and keeps only the
differences that

  - belong to a relevant kind (attribute presence/value, text value,
    missing child),
  - are not claimed by a false-positive heuristic,
  - were not also observed between the base and any verification rendering.

Verification renderings are independent legitimate renderings of the same
page; whatever differs between them and the base is treated as noise.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple, Union

from bs4 import BeautifulSoup

from .dom import load_document, normalize
from .heuristics import DEFAULT_HEURISTICS, Heuristic, claimed_by
from .mode import DEFAULT_MODE, ComparisonMode
from .treediff import Difference, DifferenceKind, compare_documents

logger = logging.getLogger("tamperwatch.reconcile")

PathLike = Union[str, Path]

RELEVANT_KINDS: FrozenSet[DifferenceKind] = frozenset(
    {
        DifferenceKind.ATTR_PRESENCE,
        DifferenceKind.ATTR_VALUE,
        DifferenceKind.TEXT_VALUE,
        DifferenceKind.CHILD_STRUCTURE,
    }
)


# ─────────────────────────────────────────────────────────────
# Equality
# ─────────────────────────────────────────────────────────────

def is_equal(first: BeautifulSoup, second: BeautifulSoup, mode: ComparisonMode = DEFAULT_MODE) -> bool:
    """
    True when the two documents differ in nothing but what ``mode`` ignores
    (comments, whitespace, attribute order, ...).
    """
    normalize(first, mode)
    normalize(second, mode)
    return not compare_documents(first, second, mode)


def is_equal_files(first: PathLike, second: PathLike, mode: ComparisonMode = DEFAULT_MODE) -> bool:
    """File overload of is_equal; unreadable dumps raise LoadError."""
    return is_equal(load_document(first), load_document(second), mode)


# ─────────────────────────────────────────────────────────────
# Raw differences
# ─────────────────────────────────────────────────────────────

def diff(
    base: BeautifulSoup,
    targets: Iterable[BeautifulSoup],
    mode: ComparisonMode = DEFAULT_MODE,
) -> List[Difference]:
    """
    All differences, of any kind, between ``base`` and each target, in
    target order.
    """
    normalize(base, mode)
    targets = list(targets)
    for target in targets:
        normalize(target, mode)
    return _differences(base, targets, mode)


def _differences(
    base: BeautifulSoup,
    targets: Iterable[BeautifulSoup],
    mode: ComparisonMode,
) -> List[Difference]:
    # documents are already normalized
    differences: List[Difference] = []
    for target in targets:
        differences.extend(compare_documents(base, target, mode))
    return differences


# ─────────────────────────────────────────────────────────────
# Whitelist
# ─────────────────────────────────────────────────────────────

def _key(difference: Difference) -> Tuple[str, str]:
    return (
        (difference.control.path or "").lower(),
        (difference.test.path or "").lower(),
    )


class Whitelist:
    """
    Path pairs of differences seen between the base and the verification
    renderings. Membership ignores case and values; absent paths count as
    empty strings.
    """

    def __init__(self, keys: Iterable[Tuple[str, str]] = ()):
        self._keys = set(keys)

    @classmethod
    def from_differences(cls, differences: Iterable[Difference]) -> "Whitelist":
        return cls(_key(d) for d in differences)

    def matches(self, difference: Difference) -> bool:
        return _key(difference) in self._keys

    def __contains__(self, difference: Difference) -> bool:
        return self.matches(difference)

    def __len__(self):
        return len(self._keys)

    def __repr__(self):
        return f"Whitelist(entries={len(self._keys)})"


def build_whitelist(
    base: BeautifulSoup,
    verifications: Sequence[BeautifulSoup],
    mode: ComparisonMode = DEFAULT_MODE,
) -> Whitelist:
    return Whitelist.from_differences(diff(base, verifications, mode))


# ─────────────────────────────────────────────────────────────
# Filtering
# ─────────────────────────────────────────────────────────────

def filter_differences(
    differences: Iterable[Difference],
    whitelist: Whitelist,
    heuristics: Sequence[Heuristic] = DEFAULT_HEURISTICS,
) -> List[Difference]:
    """
    Return the differences that survive kind filtering, the heuristics and
    the whitelist, keeping their order. The input is left untouched.
    """
    kept = []
    for difference in differences:
        if difference.kind not in RELEVANT_KINDS:
            continue
        heuristic = claimed_by(difference, heuristics)
        if heuristic is not None:
            logger.debug(
                "suppressed",
                extra={"heuristic": heuristic, "kind": difference.kind.name, "xpath": difference.test.path},
            )
            continue
        if whitelist.matches(difference):
            continue
        kept.append(difference)
    return kept


# ─────────────────────────────────────────────────────────────
# Reconciliation
# ─────────────────────────────────────────────────────────────

@dataclass
class Reconciliation:
    """Outcome of one base/target comparison."""

    raw: List[Difference]
    residual: List[Difference]
    whitelist_size: int = 0

    @property
    def equal(self) -> bool:
        return not self.raw


def reconcile_documents(
    base: BeautifulSoup,
    verifications: Sequence[BeautifulSoup],
    target: BeautifulSoup,
    mode: ComparisonMode = DEFAULT_MODE,
    heuristics: Sequence[Heuristic] = DEFAULT_HEURISTICS,
) -> Reconciliation:
    """
    Normalize every document once, then diff base against target. An empty
    raw diff is the equality short-circuit: no whitelist is built.
    """
    for document in (base, target, *verifications):
        normalize(document, mode)

    raw = compare_documents(base, target, mode)
    if not raw:
        return Reconciliation(raw, [])

    whitelist = Whitelist.from_differences(_differences(base, verifications, mode))
    residual = filter_differences(raw, whitelist, heuristics)
    logger.debug(
        "reconciled",
        extra={"raw": len(raw), "whitelist": len(whitelist), "residual": len(residual)},
    )
    return Reconciliation(raw, residual, len(whitelist))


def reconcile(
    base: BeautifulSoup,
    verifications: Sequence[BeautifulSoup],
    target: BeautifulSoup,
    mode: ComparisonMode = DEFAULT_MODE,
    heuristics: Sequence[Heuristic] = DEFAULT_HEURISTICS,
) -> List[Difference]:
    """
    Residual differences between ``base`` and ``target`` once the noise
    learned from ``verifications`` and the heuristics is removed.
    """
    return reconcile_documents(base, verifications, target, mode, heuristics).residual


def reconcile_files(
    base: PathLike,
    verifications: Sequence[PathLike],
    target: PathLike,
    mode: ComparisonMode = DEFAULT_MODE,
    heuristics: Optional[Sequence[Heuristic]] = None,
) -> List[Difference]:
    """File overload of reconcile; unreadable dumps raise LoadError."""
    base_doc = load_document(base)
    verification_docs = [load_document(p) for p in verifications]
    target_doc = load_document(target)
    return reconcile(
        base_doc,
        verification_docs,
        target_doc,
        mode,
        DEFAULT_HEURISTICS if heuristics is None else heuristics,
    )
