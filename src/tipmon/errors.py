from __future__ import annotations


class MonitorError(RuntimeError):
    """
    一次轮询周期失败时抛出的异常基类。

    phase 标识失败发生在哪个阶段（"fetch" 拉取最新页 / "repair" 回溯校验），
    path 为被监控的列表路径。原始异常通过 __cause__ 保留。
    """

    phase = "monitor"

    def __init__(self, message: str, *, path: str) -> None:
        super().__init__(message)
        self.path = path


class FetchError(MonitorError):
    phase = "fetch"


class RepairFetchError(FetchError):
    phase = "repair"


class DispatchError(MonitorError):
    phase = "dispatch"
