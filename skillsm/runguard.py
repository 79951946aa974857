from __future__ import annotations

from typing import Callable

from .models import ProgressLog, ProgressStatus

ProgressCallback = Callable[[ProgressLog], None]


class RunToken:
    def __init__(self, guard: RunGuard, run_id: int):
        self.guard = guard
        self.run_id = run_id

    def is_current(self) -> bool:
        return self.guard.current == self.run_id

    def __repr__(self) -> str:
        return f"RunToken({self.guard.name!r}, run_id={self.run_id}, current={self.is_current()})"


class RunGuard:
    """Issues increasing run ids; only the most recently started run is live.

    Superseded runs are not interrupted. Their pending steps check their token
    on resume and drop their effects instead.
    """

    def __init__(self, name: str = ""):
        self.name = name
        self._counter = 0

    @property
    def current(self) -> int:
        return self._counter

    def start(self) -> RunToken:
        self._counter += 1
        return RunToken(self, self._counter)

    def cancel(self) -> None:
        self._counter += 1


class ProgressBoard:
    def __init__(self, token: RunToken | None = None, on_progress: ProgressCallback | None = None):
        self.token = token
        self._on_progress = on_progress
        self._entries: list[ProgressLog] = []
        self.progress = 0.0

    @property
    def live(self) -> bool:
        return self.token is None or self.token.is_current()

    @property
    def entries(self) -> list[ProgressLog]:
        return list(self._entries)

    @property
    def had_errors(self) -> bool:
        return any(entry.status == "error" for entry in self._entries)

    def report(self, log: ProgressLog) -> bool:
        if not self.live:
            return False
        for idx, entry in enumerate(self._entries):
            if entry.id == log.id:
                self._entries[idx] = log
                break
        else:
            self._entries.append(log)
        self.progress = log.progress
        if self._on_progress:
            self._on_progress(log)
        return True

    def emit(self, entry_id: str, label: str, status: ProgressStatus, progress: float) -> bool:
        return self.report(ProgressLog(id=entry_id, label=label, status=status, progress=progress))
