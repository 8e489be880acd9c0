"""Tests for opening nodes, lazy children and path addressing."""

import asyncio
from typing import Any

import pytest

from hypertree.config import TreeOptions
from hypertree.core.state.engine import TreeState
from hypertree.models.node import TreeNode
from tests.unit.fakes import ErrorRecorder, FakeFetcher, outline, visible_ids


def _lazy_state(fetcher: FakeFetcher, on_error: ErrorRecorder | None = None) -> TreeState:
    data = [{"id": "lazy", "get_children": fetcher}, {"id": "other"}]
    return TreeState("lazy-tree", data, on_error=on_error)


@pytest.mark.asyncio
async def test_set_open_toggles_static_node(state: TreeState) -> None:
    await state.set_open("a")
    assert visible_ids(state.view) == ["a", "b", "e", "f"]
    await state.set_open("a")
    assert visible_ids(state.view) == ["a", "f"]


@pytest.mark.asyncio
async def test_set_open_numeric_scenario() -> None:
    state = TreeState("t", [{"id": 1, "children": [{"id": 2}, {"id": 3}]}])
    assert [(n.id, n.depth) for n in state.flattened] == [(1, 0)]
    await state.set_open(1)
    assert [(n.id, n.depth) for n in state.flattened] == [(1, 0), (2, 1), (3, 1)]


@pytest.mark.asyncio
async def test_set_open_unknown_id_is_noop(state: TreeState) -> None:
    await state.set_open("missing")
    assert visible_ids(state.view) == ["a", "f"]
    assert state.revision == 0


@pytest.mark.asyncio
async def test_lazy_open_success_transitions() -> None:
    fetcher = FakeFetcher(children=[{"id": "x1"}, {"id": "x2"}])
    fetcher.gate = asyncio.Event()
    state = _lazy_state(fetcher)
    node = state.view.get_node_by_id("lazy")
    assert node is not None
    assert (node.loading, node.opened) == (False, False)

    task = asyncio.create_task(state.set_open("lazy"))
    await asyncio.sleep(0)
    assert (node.loading, node.opened) == (True, False)

    fetcher.gate.set()
    await task
    assert (node.loading, node.opened) == (False, True)
    assert visible_ids(state.view) == ["lazy", "x1", "x2", "other"]
    assert state.view.get_node_by_id("x2").parent is node  # type: ignore[union-attr]


@pytest.mark.asyncio
async def test_lazy_open_failure_reports_and_stays_closed() -> None:
    error = RuntimeError("backend down")
    fetcher = FakeFetcher(error=error)
    fetcher.gate = asyncio.Event()
    recorder = ErrorRecorder()
    state = _lazy_state(fetcher, on_error=recorder)
    node = state.view.get_node_by_id("lazy")
    assert node is not None

    task = asyncio.create_task(state.set_open(node))
    await asyncio.sleep(0)
    assert node.loading

    fetcher.gate.set()
    await task
    assert (node.loading, node.opened) == (False, False)
    assert recorder.errors == [("lazy", error)]
    assert visible_ids(state.view) == ["lazy", "other"]


@pytest.mark.asyncio
async def test_lazy_open_failure_is_not_retried() -> None:
    fetcher = FakeFetcher(error=ValueError("nope"))
    state = _lazy_state(fetcher)
    await state.set_open("lazy")
    assert fetcher.calls == ["lazy"]


@pytest.mark.asyncio
async def test_cancelled_fetch_releases_node_for_reopen() -> None:
    fetcher = FakeFetcher(children=[{"id": "x1"}])
    fetcher.gate = asyncio.Event()
    state = _lazy_state(fetcher)
    node = state.view.get_node_by_id("lazy")
    assert node is not None

    task = asyncio.create_task(state.set_open("lazy"))
    await asyncio.sleep(0)
    assert node.loading
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert (node.loading, node.opened) == (False, False)

    fetcher.gate.set()
    await state.set_open("lazy")
    assert (node.loading, node.opened) == (False, True)
    assert fetcher.calls == ["lazy", "lazy"]
    assert visible_ids(state.view) == ["lazy", "x1", "other"]


@pytest.mark.asyncio
async def test_failing_error_channel_still_signals_loading_cleared() -> None:
    def broken_channel(_node: TreeNode, _error: BaseException) -> None:
        raise RuntimeError("channel closed")

    fetcher = FakeFetcher(error=ValueError("nope"))
    state = TreeState("lazy-tree", [{"id": "lazy", "get_children": fetcher}], on_error=broken_channel)
    node = state.view.get_node_by_id("lazy")
    assert node is not None
    seen: list[bool] = []
    state.subscribe(lambda: seen.append(node.loading))

    with pytest.raises(RuntimeError):
        await state.set_open("lazy")
    assert seen[-1] is False
    assert (node.loading, node.opened) == (False, False)


@pytest.mark.asyncio
async def test_concurrent_opens_fetch_once() -> None:
    fetcher = FakeFetcher(children=[{"id": "x1"}])
    fetcher.gate = asyncio.Event()
    state = _lazy_state(fetcher)

    first = asyncio.create_task(state.set_open("lazy"))
    second = asyncio.create_task(state.set_open("lazy"))
    await asyncio.sleep(0)
    fetcher.gate.set()
    await asyncio.gather(first, second)

    assert fetcher.calls == ["lazy"]
    node = state.view.get_node_by_id("lazy")
    assert node is not None
    assert node.opened
    assert [c.id for c in node.children] == ["x1"]


@pytest.mark.asyncio
async def test_lazy_node_closes_then_refetches_on_reopen() -> None:
    fetcher = FakeFetcher(children=[{"id": "x1"}])
    state = _lazy_state(fetcher)
    await state.set_open("lazy")
    await state.set_open("lazy")
    assert visible_ids(state.view) == ["lazy", "other"]

    fetcher.children = [{"id": "y1"}]
    await state.set_open("lazy")
    assert fetcher.calls == ["lazy", "lazy"]
    assert visible_ids(state.view) == ["lazy", "y1", "other"]
    assert state.view.get_node_by_id("x1") is None


@pytest.mark.asyncio
async def test_sync_fetch_capability_is_accepted() -> None:
    def fetch(node: TreeNode) -> list[dict[str, Any]]:
        return [{"id": f"{node.id}-child"}]

    state = TreeState("t", [{"id": "n", "get_children": fetch}])
    await state.set_open("n")
    assert visible_ids(state.view) == ["n", "n-child"]


@pytest.mark.asyncio
async def test_open_by_path_opens_each_segment(state: TreeState) -> None:
    await state.set_open_by_path("a/b/c")
    node = state.view.get_node_by_id("c")
    assert node is not None
    assert [n.id for n in node.ancestors()] == ["b", "a"]
    assert visible_ids(state.view) == ["a", "b", "c", "d", "e", "f"]


@pytest.mark.asyncio
async def test_open_by_path_leaves_opened_nodes_open(opened_state: TreeState) -> None:
    await opened_state.set_open_by_path("a/b")
    assert opened_state.view.get_node_by_id("a").opened  # type: ignore[union-attr]
    assert opened_state.view.get_node_by_id("b").opened  # type: ignore[union-attr]


@pytest.mark.asyncio
async def test_open_by_path_waits_for_lazy_parents() -> None:
    grandchildren = FakeFetcher(children=[{"id": "leaf"}])
    children = FakeFetcher(children=[{"id": "mid", "get_children": grandchildren}])
    state = TreeState("t", [{"id": "top", "get_children": children}])

    await state.set_open_by_path("top/mid/leaf")

    leaf = state.view.get_node_by_id("leaf")
    assert leaf is not None
    assert [n.id for n in leaf.ancestors()] == ["mid", "top"]
    assert children.calls == ["top"]
    assert grandchildren.calls == ["mid"]


@pytest.mark.asyncio
async def test_open_by_path_skips_unknown_segments(state: TreeState) -> None:
    await state.set_open_by_path("a/nope/b")
    assert state.view.get_node_by_id("a").opened  # type: ignore[union-attr]
    assert state.view.get_node_by_id("b").opened  # type: ignore[union-attr]


@pytest.mark.asyncio
async def test_select_by_path_selects_last_segment(state: TreeState) -> None:
    await state.set_selected_by_path("a/b/d")
    assert [n.id for n in state.view.walk() if n.selected] == ["d"]
    assert "d" in visible_ids(state.view)
    assert not state.view.get_node_by_id("d").opened  # type: ignore[union-attr]


@pytest.mark.asyncio
async def test_select_by_path_all_with_multiple_select() -> None:
    state = TreeState("t", outline(), TreeOptions(multiple_select=True))
    await state.set_selected_by_path("a/b/c", select_all=True)
    assert [n.id for n in state.view.walk() if n.selected] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_select_by_path_all_in_single_select_keeps_last(state: TreeState) -> None:
    await state.set_selected_by_path("a/b/c", select_all=True)
    assert [n.id for n in state.view.walk() if n.selected] == ["c"]


@pytest.mark.asyncio
async def test_select_by_empty_path_is_noop(state: TreeState) -> None:
    await state.set_selected_by_path("")
    assert not any(n.selected for n in state.view.walk())
