"""只追加的有序日志序列，由单个任务独占。"""

from __future__ import annotations

from typing import Callable, Iterator

from loreguard.models.job import ProcessingLog

LogListener = Callable[[ProcessingLog], None]


class LogSequence:
    """按写入顺序保存 ProcessingLog。

    只提供 append，不提供删除、插入或重排；对外暴露的视图均为 tuple。
    """

    def __init__(self) -> None:
        self._entries: list[ProcessingLog] = []
        self._listeners: list[LogListener] = []

    def append(self, entry: ProcessingLog) -> ProcessingLog:
        self._entries.append(entry)
        for listener in self._listeners:
            listener(entry)
        return entry

    def subscribe(self, listener: LogListener) -> None:
        """注册监听器，每条新日志写入后同步回调。"""
        self._listeners.append(listener)

    @property
    def entries(self) -> tuple[ProcessingLog, ...]:
        return tuple(self._entries)

    @property
    def last(self) -> ProcessingLog | None:
        return self._entries[-1] if self._entries else None

    def phases(self) -> list[str]:
        """按首次出现顺序返回出现过的阶段标签。"""
        seen: list[str] = []
        for entry in self._entries:
            if entry.phase not in seen:
                seen.append(entry.phase)
        return seen

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ProcessingLog]:
        return iter(tuple(self._entries))

    def __getitem__(self, index: int | slice) -> ProcessingLog | tuple[ProcessingLog, ...]:
        if isinstance(index, slice):
            return tuple(self._entries[index])
        return self._entries[index]
