"""
Unit tests for the lockstep tree diff.
"""

from tamperwatch.dom import child_nodes, normalize, parse_document
from tamperwatch.mode import DEFAULT_MODE
from tamperwatch.treediff import (
    MISSING,
    Difference,
    DifferenceKind,
    NodeDetail,
    child_paths,
    compare_documents,
)


def xml(markup: str):
    return parse_document(markup, "xml")


def compare(control: str, test: str, mode=DEFAULT_MODE):
    first, second = xml(control), xml(test)
    normalize(first, mode)
    normalize(second, mode)
    return compare_documents(first, second, mode)


def kinds(differences):
    return [d.kind for d in differences]


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

class TestPaths:

    def test_positions_count_per_name(self):
        mode = DEFAULT_MODE.copy(ignore_comments=False)
        doc = xml("<root>t<a/><b/><a/>u<!--c--></root>")
        root = doc.find("root")
        assert child_paths("/root[1]", child_nodes(root, mode), mode) == [
            "/root[1]/text()[1]",
            "/root[1]/a[1]",
            "/root[1]/b[1]",
            "/root[1]/a[2]",
            "/root[1]/text()[2]",
            "/root[1]/comment()[1]",
        ]


# ---------------------------------------------------------------------------
# Differences
# ---------------------------------------------------------------------------

class TestCompareDocuments:

    def test_identical(self):
        assert compare("<root><a x='1'>t</a></root>", "<root><a x='1'>t</a></root>") == []

    def test_attribute_value(self):
        diffs = compare('<root><script src="a"/></root>', '<root><script src="b"/></root>')
        assert diffs == [
            Difference(
                DifferenceKind.ATTR_VALUE,
                NodeDetail("/root[1]/script[1]/@src", "a", None),
                NodeDetail("/root[1]/script[1]/@src", "b", None),
            )
        ]

    def test_attribute_added(self):
        diffs = compare("<root><script/></root>", '<root><script type="t"/></root>')
        assert kinds(diffs) == [DifferenceKind.ELEMENT_NUM_ATTRIBUTES, DifferenceKind.ATTR_NAME_NOT_FOUND]
        presence = diffs[1]
        assert presence.control == NodeDetail("/root[1]/script[1]", None, "root")
        assert presence.test == NodeDetail("/root[1]/script[1]", "type", "root")

    def test_attribute_removed(self):
        diffs = compare('<root><script type="t"/></root>', "<root><script/></root>")
        assert diffs[-1].control.value == "type"
        assert diffs[-1].test.value is None

    def test_child_added(self):
        diffs = compare("<root><script/>Data</root>", "<root><script/>Data<script/></root>")
        assert kinds(diffs) == [DifferenceKind.CHILD_NODELIST_LENGTH, DifferenceKind.CHILD_NODE_NOT_FOUND]
        added = diffs[1]
        assert added.control == MISSING
        assert added.test == NodeDetail("/root[1]/script[2]", "script", "root")

    def test_child_removed(self):
        diffs = compare("<root><p/><script/></root>", "<root><p/></root>")
        removed = diffs[-1]
        assert removed.kind == DifferenceKind.CHILD_NODE_NOT_FOUND
        assert removed.control.path == "/root[1]/script[1]"
        assert removed.test.path is None

    def test_reordered_children_only_change_sequence(self):
        diffs = compare('<body><a x="1" y="2"/><b/></body>', '<body><b/><a y="2" x="1"/></body>')
        assert kinds(diffs) == [DifferenceKind.CHILD_NODELIST_SEQUENCE] * 2

    def test_text_value(self):
        diffs = compare("<root><p>one</p><p>two</p>tail</root>", "<root><p>one</p><p>zwei</p>tail</root>")
        assert len(diffs) == 1
        assert diffs[0].kind == DifferenceKind.TEXT_VALUE
        assert diffs[0].test == NodeDetail("/root[1]/p[2]/text()[1]", "zwei", "p")

    def test_text_compared_trimmed(self):
        assert compare("<root><p>  one </p></root>", "<root><p>one</p></root>") == []

    def test_unmatched_elements_are_paired(self):
        diffs = compare("<root><p>x</p></root>", "<root><div>x</div></root>")
        assert kinds(diffs) == [DifferenceKind.ELEMENT_TAG_NAME]
        assert diffs[0].control.path == "/root[1]/p[1]"
        assert diffs[0].test.path == "/root[1]/div[1]"

    def test_unmatched_elements_reported_missing(self):
        mode = DEFAULT_MODE.copy(compare_unmatched=False)
        diffs = compare("<root><p>x</p></root>", "<root><div>x</div></root>", mode)
        assert kinds(diffs) == [DifferenceKind.CHILD_NODE_NOT_FOUND] * 2
        assert diffs[0].control.value == "p"
        assert diffs[1].test.value == "div"

    def test_text_paired_with_element_is_a_node_type_difference(self):
        diffs = compare("<root><s>VAL1</s></root>", "<root><s><foobar/></s></root>")
        assert kinds(diffs) == [DifferenceKind.NODE_TYPE]
        assert diffs[0].control.path == "/root[1]/s[1]/text()[1]"
        assert diffs[0].test.path == "/root[1]/s[1]/foobar[1]"

    def test_children_appear(self):
        diffs = compare("<root><p/></root>", "<root><p>x</p></root>")
        assert kinds(diffs) == [DifferenceKind.HAS_CHILD_NODES, DifferenceKind.CHILD_NODE_NOT_FOUND]
        assert diffs[1].test == NodeDetail("/root[1]/p[1]/text()[1]", "#text", "p")

    def test_attribute_order_reported_when_strict(self):
        mode = DEFAULT_MODE.copy(ignore_attribute_order=False)
        diffs = compare('<r a="1" b="2"/>', '<r b="2" a="1"/>', mode)
        assert kinds(diffs) == [DifferenceKind.ATTR_SEQUENCE] * 2

    def test_comments(self):
        assert compare("<r><!--x--></r>", "<r><!--y--></r>") == []

        mode = DEFAULT_MODE.copy(ignore_comments=False)
        diffs = compare("<r><!--x--></r>", "<r><!--y--></r>", mode)
        assert kinds(diffs) == [DifferenceKind.COMMENT_VALUE]
        assert diffs[0].control.path == "/r[1]/comment()[1]"

    def test_documents_not_modified(self):
        first = xml("<root><a>x</a></root>")
        second = xml("<root><a>y</a><b/></root>")
        before = (first.decode(), second.decode())
        compare_documents(first, second)
        assert (first.decode(), second.decode()) == before

    def test_namespace_declarations_ignored(self):
        assert compare('<r xmlns="urn:a"><c/></r>', "<r><c/></r>") == []


# ---------------------------------------------------------------------------
# Value records
# ---------------------------------------------------------------------------

class TestDifference:

    def test_id_and_aliases(self):
        d = Difference(DifferenceKind.ATTR_VALUE)
        assert d.id == 3
        assert DifferenceKind.ATTR_PRESENCE is DifferenceKind.ATTR_NAME_NOT_FOUND
        assert DifferenceKind.CHILD_STRUCTURE is DifferenceKind.CHILD_NODE_NOT_FOUND

    def test_description(self):
        d = Difference(
            DifferenceKind.ATTR_VALUE,
            NodeDetail("/r[1]/@src", "a"),
            NodeDetail("/r[1]/@src", "b"),
        )
        assert str(d).startswith("Expected attribute value 'a' but was 'b'")
        assert str(d).endswith("comparing at /r[1]/@src to /r[1]/@src")


# ---------------------------------------------------------------------------
# Walk order and depth
# ---------------------------------------------------------------------------

def nested(depth: int, leaf: str = "x", injected: bool = False):
    """``depth`` nested divs under body, built node by node."""
    doc = parse_document("<html><body></body></html>")
    current = doc.body
    for _ in range(depth):
        div = doc.new_tag("div")
        current.append(div)
        current = div
    current.append(leaf)
    if injected:
        current.append(doc.new_tag("script", attrs={"src": "http://evil.example/x.js"}))
    return doc


class TestWalk:

    def test_subtree_finishes_before_next_sibling(self):
        diffs = compare("<r><a><x>1</x></a><b>2</b></r>", "<r><a><x>9</x></a><b>8</b></r>")
        assert [d.test.path for d in diffs] == ["/r[1]/a[1]/x[1]/text()[1]", "/r[1]/b[1]/text()[1]"]

    def test_sequence_reported_after_moved_subtree(self):
        diffs = compare("<r><a>1</a><b/></r>", "<r><b/><a>2</a></r>")
        assert kinds(diffs) == [
            DifferenceKind.TEXT_VALUE,
            DifferenceKind.CHILD_NODELIST_SEQUENCE,
            DifferenceKind.CHILD_NODELIST_SEQUENCE,
        ]
        assert diffs[0].test.path == "/r[1]/a[1]/text()[1]"

    def test_deep_nesting(self):
        depth = 2000
        diffs = compare_documents(nested(depth), nested(depth, leaf="y"))
        assert kinds(diffs) == [DifferenceKind.TEXT_VALUE]
        assert diffs[0].test.path.count("/div[1]") == depth

    def test_deep_identical(self):
        assert compare_documents(nested(2000), nested(2000)) == []
