"""
Tree diff primitive.

Walks two Documents in lockstep and reports every structural difference
it meets, in walk order. Each Difference carries a kind and, for both the
control (base) and test side, the xpath-like location of the compared node,
its value and the name of its parent.

Child matching: a control child is paired with the first unmatched test
child of the same node type (and, for elements, the same tag name),
searching forward from the control child's own position and wrapping
around. Leftover children are paired in order when the mode compares
unmatched nodes; anything still alone is reported as CHILD_NODE_NOT_FOUND.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, List, Optional, Tuple

from bs4 import BeautifulSoup

from .dom import CDATA, COMMENT, ELEMENT, child_nodes, node_name, node_type, parent_name
from .mode import DEFAULT_MODE, ComparisonMode


class DifferenceKind(IntEnum):
    ATTR_NAME_NOT_FOUND = 2
    ATTR_VALUE = 3
    ATTR_SEQUENCE = 4
    CDATA_VALUE = 5
    COMMENT_VALUE = 6
    ELEMENT_TAG_NAME = 10
    ELEMENT_NUM_ATTRIBUTES = 11
    TEXT_VALUE = 14
    NODE_TYPE = 17
    HAS_CHILD_NODES = 18
    CHILD_NODELIST_LENGTH = 19
    CHILD_NODELIST_SEQUENCE = 20
    CHILD_NODE_NOT_FOUND = 22

    # names used by the filtering stage
    ATTR_PRESENCE = 2
    CHILD_STRUCTURE = 22

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]


_DESCRIPTIONS = {
    DifferenceKind.ATTR_NAME_NOT_FOUND: "attribute name",
    DifferenceKind.ATTR_VALUE: "attribute value",
    DifferenceKind.ATTR_SEQUENCE: "sequence of attributes",
    DifferenceKind.CDATA_VALUE: "CDATA section value",
    DifferenceKind.COMMENT_VALUE: "comment value",
    DifferenceKind.ELEMENT_TAG_NAME: "element tag name",
    DifferenceKind.ELEMENT_NUM_ATTRIBUTES: "number of element attributes",
    DifferenceKind.TEXT_VALUE: "text value",
    DifferenceKind.NODE_TYPE: "node type",
    DifferenceKind.HAS_CHILD_NODES: "presence of child nodes to be",
    DifferenceKind.CHILD_NODELIST_LENGTH: "number of child nodes",
    DifferenceKind.CHILD_NODELIST_SEQUENCE: "sequence of child nodes",
    DifferenceKind.CHILD_NODE_NOT_FOUND: "presence of child node",
}


@dataclass(frozen=True)
class NodeDetail:
    path: Optional[str] = None
    value: Optional[str] = None
    parent_name: Optional[str] = None


MISSING = NodeDetail()


@dataclass(frozen=True)
class Difference:
    kind: DifferenceKind
    control: NodeDetail = MISSING
    test: NodeDetail = MISSING

    @property
    def id(self) -> int:
        return int(self.kind)

    def __str__(self):
        return (
            f"Expected {self.kind.description} '{self.control.value}' "
            f"but was '{self.test.value}' - comparing at {self.control.path} "
            f"to {self.test.path}"
        )


# ─────────────────────────────────────────────────────────────
# Paths
# ─────────────────────────────────────────────────────────────

def _step(node, mode: ComparisonMode) -> str:
    kind = node_type(node, mode)
    if kind == ELEMENT:
        return node.name
    if kind == COMMENT:
        return "comment()"
    return "text()"


def child_paths(parent_path: str, children: List, mode: ComparisonMode = DEFAULT_MODE) -> List[str]:
    """Document-order, 1-based per-name positions: ``/root[1]/text()[2]``."""
    counts: Dict[str, int] = {}
    paths = []
    for child in children:
        step = _step(child, mode)
        counts[step] = counts.get(step, 0) + 1
        paths.append(f"{parent_path}/{step}[{counts[step]}]")
    return paths


def _attributes(tag) -> Dict[str, str]:
    return {
        name: str(value)
        for name, value in tag.attrs.items()
        if name != "xmlns" and not name.startswith("xmlns:")
    }


# ─────────────────────────────────────────────────────────────
# Lockstep walk
# ─────────────────────────────────────────────────────────────

# work items on the walk stack
_NODE = "node"
_CHILDREN = "children"
_REPORT = "report"


class _Walk:
    """
    Lockstep walk driven by an explicit stack, so nesting depth is bounded
    by memory rather than the interpreter's recursion limit.

    A child list expands into its pending items (node pairs and the
    differences reported around them) pushed in reverse, so they pop in
    document order and each subtree finishes before its next sibling.
    """

    def __init__(self, mode: ComparisonMode):
        self.mode = mode
        self.differences: List[Difference] = []
        self.stack: List[Tuple] = []

    def run(self, control, test) -> List[Difference]:
        self.stack.append((_CHILDREN, control, test, "", ""))
        while self.stack:
            item = self.stack.pop()
            if item[0] == _NODE:
                self.compare_node(*item[1:])
            elif item[0] == _CHILDREN:
                self.compare_children(*item[1:])
            else:
                self.differences.append(item[1])
        return self.differences

    def report(self, kind: DifferenceKind, control: NodeDetail, test: NodeDetail):
        self.differences.append(Difference(kind, control, test))

    def detail(self, node, path, value) -> NodeDetail:
        return NodeDetail(path, value, parent_name(node))

    def compare_node(self, control, test, control_path: str, test_path: str):
        control_type = node_type(control, self.mode)
        test_type = node_type(test, self.mode)
        if control_type != test_type:
            self.report(
                DifferenceKind.NODE_TYPE,
                self.detail(control, control_path, control_type),
                self.detail(test, test_path, test_type),
            )
            return

        if control_type == ELEMENT:
            if control.name != test.name:
                self.report(
                    DifferenceKind.ELEMENT_TAG_NAME,
                    self.detail(control, control_path, control.name),
                    self.detail(test, test_path, test.name),
                )
            self.compare_attributes(control, test, control_path, test_path)
            self.stack.append((_CHILDREN, control, test, control_path, test_path))
            return

        control_value, test_value = str(control), str(test)
        if self.mode.ignore_whitespace:
            control_value, test_value = control_value.strip(), test_value.strip()
        if control_value != test_value:
            if control_type == COMMENT:
                kind = DifferenceKind.COMMENT_VALUE
            elif control_type == CDATA:
                kind = DifferenceKind.CDATA_VALUE
            else:
                kind = DifferenceKind.TEXT_VALUE
            self.report(
                kind,
                self.detail(control, control_path, control_value),
                self.detail(test, test_path, test_value),
            )

    def compare_attributes(self, control, test, control_path: str, test_path: str):
        control_attrs = _attributes(control)
        test_attrs = _attributes(test)

        if len(control_attrs) != len(test_attrs):
            self.report(
                DifferenceKind.ELEMENT_NUM_ATTRIBUTES,
                self.detail(control, control_path, str(len(control_attrs))),
                self.detail(test, test_path, str(len(test_attrs))),
            )

        test_order = list(test_attrs)
        for index, (name, value) in enumerate(control_attrs.items()):
            if name not in test_attrs:
                self.report(
                    DifferenceKind.ATTR_NAME_NOT_FOUND,
                    self.detail(control, control_path, name),
                    self.detail(test, test_path, None),
                )
                continue

            control_attr_path = f"{control_path}/@{name}"
            test_attr_path = f"{test_path}/@{name}"
            if value != test_attrs[name]:
                # attributes have no parent node
                self.report(
                    DifferenceKind.ATTR_VALUE,
                    NodeDetail(control_attr_path, value),
                    NodeDetail(test_attr_path, test_attrs[name]),
                )
            if not self.mode.ignore_attribute_order and test_order.index(name) != index:
                self.report(
                    DifferenceKind.ATTR_SEQUENCE,
                    NodeDetail(control_attr_path, str(index)),
                    NodeDetail(test_attr_path, str(test_order.index(name))),
                )

        for name in test_attrs:
            if name not in control_attrs:
                self.report(
                    DifferenceKind.ATTR_NAME_NOT_FOUND,
                    self.detail(control, control_path, None),
                    self.detail(test, test_path, name),
                )

    def _qualifies(self, control, test) -> bool:
        control_type = node_type(control, self.mode)
        if control_type != node_type(test, self.mode):
            return False
        return control_type != ELEMENT or control.name == test.name

    def _match(self, control_children: List, test_children: List) -> Dict[int, int]:
        matches: Dict[int, int] = {}
        taken = set()
        last = len(test_children) - 1
        for i, control in enumerate(control_children):
            if last < 0:
                break
            start = min(i, last)
            j = start
            while True:
                if j not in taken and self._qualifies(control, test_children[j]):
                    matches[i] = j
                    taken.add(j)
                    break
                j = 0 if j >= last else j + 1
                if j == start:
                    break

        if self.mode.compare_unmatched:
            leftovers = [j for j in range(len(test_children)) if j not in taken]
            for i in range(len(control_children)):
                if i not in matches and leftovers:
                    matches[i] = leftovers.pop(0)
        return matches

    def compare_children(self, control, test, control_path: str, test_path: str):
        control_children = child_nodes(control, self.mode)
        test_children = child_nodes(test, self.mode)

        if bool(control_children) != bool(test_children):
            self.report(
                DifferenceKind.HAS_CHILD_NODES,
                self.detail(control, control_path, str(bool(control_children)).lower()),
                self.detail(test, test_path, str(bool(test_children)).lower()),
            )
        if not control_children and not test_children:
            return
        if control_children and test_children and len(control_children) != len(test_children):
            self.report(
                DifferenceKind.CHILD_NODELIST_LENGTH,
                self.detail(control, control_path, str(len(control_children))),
                self.detail(test, test_path, str(len(test_children))),
            )

        control_paths = child_paths(control_path, control_children, self.mode)
        test_paths = child_paths(test_path, test_children, self.mode)
        matches = self._match(control_children, test_children)
        pending: List[Tuple] = []

        for i, control_child in enumerate(control_children):
            if i not in matches:
                pending.append((_REPORT, Difference(
                    DifferenceKind.CHILD_NODE_NOT_FOUND,
                    self.detail(control_child, control_paths[i], node_name(control_child, self.mode)),
                    MISSING,
                )))
                continue
            j = matches[i]
            test_child = test_children[j]
            pending.append((_NODE, control_child, test_child, control_paths[i], test_paths[j]))
            if i != j:
                pending.append((_REPORT, Difference(
                    DifferenceKind.CHILD_NODELIST_SEQUENCE,
                    self.detail(control_child, control_paths[i], str(i)),
                    self.detail(test_child, test_paths[j], str(j)),
                )))

        matched = set(matches.values())
        for j, test_child in enumerate(test_children):
            if j not in matched:
                pending.append((_REPORT, Difference(
                    DifferenceKind.CHILD_NODE_NOT_FOUND,
                    MISSING,
                    self.detail(test_child, test_paths[j], node_name(test_child, self.mode)),
                )))

        self.stack.extend(reversed(pending))


def compare_documents(
    control: BeautifulSoup,
    test: BeautifulSoup,
    mode: ComparisonMode = DEFAULT_MODE,
) -> List[Difference]:
    """
    Return every difference between two Documents, in walk order.

    Neither document is modified; callers normalize beforehand.
    """
    return _Walk(mode).run(control, test)
