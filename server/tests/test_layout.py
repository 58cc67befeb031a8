from codeviz.config import COLLAPSED_MIN_VALUE, ROOT_KEY
from codeviz.models import RawNode, ViewConfig
from codeviz.services.layout import partition
from codeviz.services.transform import filter_node


def _display(collapsed=frozenset()):
    raw = RawNode.model_validate(
        {
            "name": "root",
            "type": "folder",
            "children": [
                {
                    "name": "src",
                    "type": "folder",
                    "children": [
                        {"name": "a.py", "type": "file", "value": 300},
                        {"name": "b.py", "type": "file", "value": 100},
                    ],
                },
                {"name": "c.py", "type": "file", "value": 400},
            ],
        }
    )
    return filter_node(raw, None, ViewConfig(mode="size"), collapsed)


def test_partition_splits_width_by_weight_and_height_by_depth() -> None:
    laid = {node.key: node for node in partition(_display(), 800, 300)}

    root = laid[ROOT_KEY]
    assert (root.rect.x0, root.rect.y0, root.rect.x1, root.rect.y1) == (0, 0, 800, 100)

    src = laid["src"]
    assert (src.rect.x0, src.rect.x1) == (0, 400)
    assert (src.rect.y0, src.rect.y1) == (100, 200)
    assert src.parent_key == ROOT_KEY

    assert (laid["src/a.py"].rect.x0, laid["src/a.py"].rect.x1) == (0, 300)
    assert (laid["src/b.py"].rect.x0, laid["src/b.py"].rect.x1) == (300, 400)
    assert laid["src/a.py"].depth == 2
    assert (laid["c.py"].rect.x0, laid["c.py"].rect.x1) == (400, 800)


def test_partition_returns_pre_order() -> None:
    keys = [node.key for node in partition(_display(), 800, 300)]
    assert keys == [ROOT_KEY, "src", "src/a.py", "src/b.py", "c.py"]


def test_collapsed_folder_is_a_leaf_with_fixed_weight() -> None:
    laid = {node.key: node for node in partition(_display(frozenset({"src"})), 404, 200)}

    assert laid["src"].weight == COLLAPSED_MIN_VALUE
    assert "src/a.py" not in laid
    assert laid["src"].rect.width == 4
    # Tree is two levels deep now, so each band is half the height.
    assert laid["src"].rect.height == 100


def test_empty_tree_gets_the_whole_rectangle() -> None:
    raw = RawNode.model_validate({"name": "root", "type": "folder", "children": []})
    laid = partition(filter_node(raw), 100, 50)

    assert len(laid) == 1
    assert laid[0].rect.height == 50
    assert laid[0].weight == 0
