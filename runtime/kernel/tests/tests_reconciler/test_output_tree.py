"""
Runtime Kernel — Output Tree Tests

Arena insertion, child ordering, subtree removal and node events.
"""

import pytest

from runtime.kernel.output_tree import OutputTree
from runtime.kernel.types import BlockNode, ElementNode, parse_path, path_key


def block(tree, path, **layout):
    return BlockNode(node_id=tree.next_node_id(), path=path, run_id="r1", fingerprint="", layout=layout)


def element(tree, path, widget_id=None, form_id=None):
    return ElementNode(
        node_id=tree.next_node_id(),
        path=path,
        run_id="r1",
        fingerprint="",
        element={"type": "text"},
        widget_id=widget_id,
        form_id=form_id,
    )


@pytest.fixture
def tree():
    return OutputTree()


@pytest.fixture
def events(tree):
    seen = []
    tree.subscribe(lambda change, path, node: seen.append((change, path)))
    return seen


class TestPathKeys:
    def test_round_trip(self):
        for path in [(), (0,), (0, 3, 1)]:
            assert parse_path(path_key(path)) == path

    def test_key_format(self):
        assert path_key((0, 3, 1)) == "0/3/1"
        assert path_key(()) == ""


class TestPut:
    def test_empty_tree(self, tree):
        assert len(tree) == 0
        assert tree.root.path == ()
        assert tree.paths() == []

    def test_mount_and_replace(self, tree, events):
        assert tree.put(element(tree, (0,))) == "mounted"
        assert tree.put(element(tree, (0,))) == "replaced"
        assert events == [("mounted", (0,)), ("replaced", (0,))]
        assert len(tree) == 1

    def test_children_kept_sorted(self, tree):
        tree.put(element(tree, (2,)))
        tree.put(element(tree, (0,)))
        tree.put(element(tree, (1,)))
        assert tree.root.children == [0, 1, 2]
        assert tree.paths() == [(0,), (1,), (2,)]

    def test_depth_first_order(self, tree):
        tree.put(block(tree, (0,)))
        tree.put(element(tree, (0, 0)))
        tree.put(element(tree, (1,)))
        tree.put(element(tree, (0, 1)))
        assert tree.paths() == [(0,), (0, 0), (0, 1), (1,)]

    def test_node_ids_unique(self, tree):
        a = element(tree, (0,))
        b = element(tree, (1,))
        assert a.node_id != b.node_id != tree.root.node_id

    def test_contains(self, tree):
        tree.put(element(tree, (0,)))
        assert (0,) in tree
        assert (1,) not in tree
        assert [0] not in tree


class TestRemoveSubtree:
    def test_removes_descendants_deepest_first(self, tree, events):
        tree.put(block(tree, (0,)))
        tree.put(block(tree, (0, 0)))
        tree.put(element(tree, (0, 0, 0)))
        events.clear()
        removed = tree.remove_subtree((0,))
        assert removed == [(0, 0, 0), (0, 0), (0,)]
        assert len(tree) == 0
        assert tree.root.children == []
        assert [change for change, _ in events] == ["removed"] * 3

    def test_remove_missing(self, tree):
        assert tree.remove_subtree((5,)) == []

    def test_remove_root_keeps_root(self, tree):
        tree.put(element(tree, (0,)))
        tree.put(element(tree, (1,)))
        assert tree.remove_subtree(()) == [(0,), (1,)]
        assert tree.root is tree.get(())
        assert len(tree) == 0


class TestQueries:
    def test_widget_ids(self, tree):
        tree.put(element(tree, (0,), widget_id="a"))
        tree.put(element(tree, (1,)))
        tree.put(block(tree, (2,)))
        tree.put(element(tree, (2, 0), widget_id="b"))
        assert tree.widget_ids() == {"a", "b"}

    def test_element_ids(self, tree):
        chart = element(tree, (0,))
        chart.element = {"type": "chart", "id": "chart1"}
        tree.put(chart)
        tree.put(element(tree, (1,), widget_id="w"))
        tree.put(element(tree, (2,)))
        assert tree.element_ids() == {"chart1", "w"}

    def test_enclosing_form(self, tree):
        form = block(tree, (0,), type="form")
        form.form_id = "f"
        tree.put(form)
        tree.put(block(tree, (0, 0)))
        assert tree.enclosing_form((0, 0)) == "f"
        assert tree.enclosing_form((0,)) == "f"
        assert tree.enclosing_form((1,)) is None

    def test_restamp_keeps_object(self, tree, events):
        node = element(tree, (0,))
        tree.put(node)
        same = tree.restamp((0,), "r2")
        assert same is node
        assert node.run_id == "r2"
        assert events[-1] == ("restamped", (0,))

    def test_to_dict_nests_children(self, tree):
        tree.put(block(tree, (0,), type="vertical"))
        tree.put(element(tree, (0, 0), widget_id="a"))
        d = tree.to_dict()
        assert d["type"] == "block"
        assert d["children"][0]["layout"] == {"type": "vertical"}
        assert d["children"][0]["children"][0]["widget_id"] == "a"
