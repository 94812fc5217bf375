import logging

import pytest

from fakes import FailingHandler, FakeOperator, InlineDispatcher, RecordingHandler, items
from tipmon.errors import DispatchError, FetchError, RepairFetchError
from tipmon.handlers.dispatch import Dispatcher
from tipmon.monitor import DEFAULT_PAGE_LIMIT, REPAIR_PAGE_LIMIT, ListingMonitor
from tipmon.tip import TipWindow


def _monitor(op: FakeOperator, *, tip: TipWindow | None = None, handler=None, dispatcher=None) -> ListingMonitor:  # noqa: ANN001
    return ListingMonitor(
        operator=op,
        handler=handler if handler is not None else RecordingHandler(),
        path="/r/test/new",
        dispatcher=dispatcher if dispatcher is not None else InlineDispatcher(),
        tip=tip if tip is not None else TipWindow(),
    )


def _tip(*ids: str) -> TipWindow:
    tip = TipWindow(max_size=len(ids))
    tip.extend_oldest_first(ids)
    return tip


def test_first_run_seeds_without_delivering() -> None:
    """
    窗口只有哨兵时，第一页只用于播种：全部 id 写入窗口，不分发任何条目。
    """
    op = FakeOperator(scrape_returns=[items("p1", "p2")])
    handler = RecordingHandler()
    pm = _monitor(op, handler=handler)

    delivered = pm.update()

    assert delivered == []
    assert handler.delivered == []
    assert pm.tip.snapshot() == ("", "p2", "p1")
    assert pm.tip.newest() == "p1"
    # 播种不触发回溯校验
    assert op.calls == [("/r/test/new", "", "", DEFAULT_PAGE_LIMIT)]


def test_delta_is_delivered_and_appended_oldest_first() -> None:
    tip = TipWindow()
    tip.append("p1")
    op = FakeOperator(scrape_returns=[items("p2"), []])
    handler = RecordingHandler()
    pm = _monitor(op, tip=tip, handler=handler)

    delivered = pm.update()

    assert [i.item_id for i in delivered] == ["p2"]
    assert [i.item_id for i in handler.delivered] == ["p2"]
    assert pm.tip.snapshot() == ("", "p1", "p2")
    assert pm.tip.newest() == "p2"
    assert op.calls == [
        ("/r/test/new", "p1", "", DEFAULT_PAGE_LIMIT),
        ("/r/test/new", "p1", "p2", REPAIR_PAGE_LIMIT),
    ]


def test_multi_item_delta_reverses_into_window() -> None:
    tip = TipWindow()
    tip.append("x")
    op = FakeOperator(scrape_returns=[items("a", "b"), []])
    dispatcher = InlineDispatcher()
    pm = _monitor(op, tip=tip, dispatcher=dispatcher)

    delivered = pm.update()

    assert [i.item_id for i in delivered] == ["a", "b"]
    assert len(dispatcher.dispatched) == 2
    assert pm.tip.snapshot() == ("", "x", "b", "a")
    assert pm.tip.newest() == "a"


def test_fetch_tip_keeps_window_bounded() -> None:
    tip = TipWindow(max_size=4)
    tip.extend_oldest_first(["1", "2", "3", "4"])
    op = FakeOperator(scrape_returns=[items("7", "6", "5")])
    pm = _monitor(op, tip=tip)

    got = pm.fetch_tip()

    assert [i.item_id for i in got] == ["7", "6", "5"]
    assert pm.tip.snapshot() == ("4", "5", "6", "7")


def test_fetch_failure_leaves_window_unchanged() -> None:
    tip = TipWindow()
    tip.append("p1")
    op = FakeOperator(scrape_returns=[RuntimeError("transport down")])
    handler = RecordingHandler()
    pm = _monitor(op, tip=tip, handler=handler)

    with pytest.raises(FetchError) as exc_info:
        pm.update()

    assert not isinstance(exc_info.value, RepairFetchError)
    assert exc_info.value.phase == "fetch"
    assert exc_info.value.path == "/r/test/new"
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert pm.tip.snapshot() == ("", "p1")
    assert handler.delivered == []


def test_fetch_failure_on_first_run_keeps_sentinel() -> None:
    op = FakeOperator(scrape_returns=[TimeoutError("slow")])
    pm = _monitor(op)
    with pytest.raises(FetchError):
        pm.update()
    assert pm.tip.snapshot() == ("",)


def test_repair_failure_keeps_delivered_delta() -> None:
    tip = TipWindow()
    tip.append("p1")
    op = FakeOperator(scrape_returns=[items("p2"), RuntimeError("backward failed")])
    handler = RecordingHandler()
    pm = _monitor(op, tip=tip, handler=handler)

    with pytest.raises(RepairFetchError) as exc_info:
        pm.update()

    assert isinstance(exc_info.value, FetchError)
    assert exc_info.value.phase == "repair"
    assert [i.item_id for i in handler.delivered] == ["p2"]
    assert pm.tip.snapshot() == ("", "p1", "p2")


def test_repair_noop_on_empty_backward_page() -> None:
    tip = _tip("1", "2", "3")
    op = FakeOperator(scrape_returns=[[]])
    pm = _monitor(op, tip=tip)

    pm.fix_tip()

    assert pm.tip.snapshot() == ("1", "2", "3")
    assert op.calls == [("/r/test/new", "2", "3", REPAIR_PAGE_LIMIT)]


def test_repair_retreats_by_one_on_non_empty_backward_page() -> None:
    tip = _tip("1", "2", "3")
    op = FakeOperator(scrape_returns=[items("older")])
    pm = _monitor(op, tip=tip)

    pm.fix_tip()

    assert pm.tip.snapshot() == ("1", "2")
    assert pm.tip.newest() == "2"


def test_repair_retreats_once_regardless_of_page_size() -> None:
    tip = _tip("1", "2", "3")
    op = FakeOperator(scrape_returns=[items("a", "b", "c", "d", "e")])
    pm = _monitor(op, tip=tip)

    pm.fix_tip()

    assert pm.tip.snapshot() == ("1", "2")


def test_repair_failure_leaves_window_unchanged() -> None:
    tip = _tip("1", "2", "3")
    op = FakeOperator(scrape_returns=[ConnectionError("reset")])
    pm = _monitor(op, tip=tip)

    with pytest.raises(RepairFetchError):
        pm.fix_tip()

    assert pm.tip.snapshot() == ("1", "2", "3")


def test_update_shaves_after_delivery_and_rediscovers_next_cycle() -> None:
    """
    回溯页非空时 tip 后退一步；下一个周期以后退后的 tip 为 after 重新拉取。
    """
    tip = TipWindow()
    tip.append("p1")
    op = FakeOperator(scrape_returns=[items("p3", "p2"), items("p2"), items("p3"), []])
    handler = RecordingHandler()
    pm = _monitor(op, tip=tip, handler=handler)

    pm.update()
    assert pm.tip.snapshot() == ("", "p1", "p2")

    pm.update()
    assert op.calls[2] == ("/r/test/new", "p2", "", DEFAULT_PAGE_LIMIT)
    assert pm.tip.snapshot() == ("", "p1", "p2", "p3")
    assert [i.item_id for i in handler.delivered] == ["p3", "p2", "p3"]


def test_empty_delta_skips_repair() -> None:
    tip = TipWindow()
    tip.append("p1")
    op = FakeOperator(scrape_returns=[[]])
    pm = _monitor(op, tip=tip)

    assert pm.update() == []
    assert len(op.calls) == 1
    assert pm.tip.snapshot() == ("", "p1")


def test_converged_window_reseeds() -> None:
    tip = TipWindow(max_size=3)
    tip.append("p1")
    pm = _monitor(FakeOperator(scrape_returns=[items("z")]), tip=tip)

    pm.fix_tip()
    assert pm.tip.is_seeding

    handler = RecordingHandler()
    pm.handler = handler
    pm.operator = FakeOperator(scrape_returns=[items("p3", "p2")])
    assert pm.update() == []
    assert handler.delivered == []
    assert pm.tip.newest() == "p3"


def test_update_with_thread_pool_dispatcher() -> None:
    tip = TipWindow()
    tip.append("p1")
    op = FakeOperator(scrape_returns=[items("p3", "p2"), []])
    handler = RecordingHandler()
    dispatcher = Dispatcher(max_workers=2)
    pm = _monitor(op, tip=tip, handler=handler, dispatcher=dispatcher)

    pm.update()
    dispatcher.shutdown(wait=True)

    assert sorted(i.item_id for i in handler.delivered) == ["p2", "p3"]


def test_handler_failure_does_not_fail_cycle(caplog) -> None:  # noqa: ANN001
    tip = TipWindow()
    tip.append("p1")
    op = FakeOperator(scrape_returns=[items("p2"), []])
    dispatcher = Dispatcher(max_workers=1)
    pm = _monitor(op, tip=tip, handler=FailingHandler(), dispatcher=dispatcher)

    caplog.set_level(logging.ERROR)
    delivered = pm.update()
    dispatcher.shutdown(wait=True)

    assert [i.item_id for i in delivered] == ["p2"]
    assert pm.tip.newest() == "p2"
    assert "dispatch failed" in caplog.text


def test_repair_on_single_entry_window_uses_open_lower_bound() -> None:
    tip = TipWindow(max_size=1)
    tip.append("only")
    op = FakeOperator(scrape_returns=[[]])
    pm = _monitor(op, tip=tip)

    pm.fix_tip()

    assert op.calls == [("/r/test/new", "", "only", REPAIR_PAGE_LIMIT)]
    assert pm.tip.snapshot() == ("only",)


def test_closed_dispatcher_fails_before_fetch() -> None:
    """
    dispatcher 已关闭：不拉取、不推进窗口，直接抛 DispatchError。
    """
    tip = TipWindow()
    tip.append("p1")
    op = FakeOperator(scrape_returns=[items("p2")])
    dispatcher = InlineDispatcher()
    dispatcher.shutdown()
    pm = _monitor(op, tip=tip, dispatcher=dispatcher)

    with pytest.raises(DispatchError) as exc_info:
        pm.update()

    assert exc_info.value.phase == "dispatch"
    assert exc_info.value.path == "/r/test/new"
    assert op.calls == []
    assert pm.tip.snapshot() == ("", "p1")


def test_closed_thread_pool_dispatcher_fails_before_fetch() -> None:
    tip = TipWindow()
    tip.append("p1")
    op = FakeOperator(scrape_returns=[items("p2")])
    dispatcher = Dispatcher(max_workers=1)
    dispatcher.shutdown(wait=True)
    pm = _monitor(op, tip=tip, dispatcher=dispatcher)

    with pytest.raises(DispatchError):
        pm.update()

    assert op.calls == []
    assert pm.tip.newest() == "p1"


def test_dispatch_failure_is_wrapped_and_skips_repair() -> None:
    tip = TipWindow()
    tip.append("p1")
    op = FakeOperator(scrape_returns=[items("p3", "p2")])
    handler = RecordingHandler()
    pm = _monitor(op, tip=tip, handler=handler, dispatcher=InlineDispatcher(fail_at=1))

    with pytest.raises(DispatchError) as exc_info:
        pm.update()

    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert [i.item_id for i in handler.delivered] == ["p3"]
    # 增量已经追加，不回滚；回溯校验没有执行
    assert pm.tip.snapshot() == ("", "p1", "p2", "p3")
    assert len(op.calls) == 1
