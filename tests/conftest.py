"""Shared fixtures: virtual time and a recording voice channel."""

from __future__ import annotations

from typing import Callable

import pytest


class _Handle:
    def __init__(self, due: float, seq: int, callback: Callable[[], None]) -> None:
        self.due = due
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler driven by :meth:`advance` instead of a real clock."""

    def __init__(self) -> None:
        self.now = 0.0
        self._seq = 0
        self._pending: list[_Handle] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> _Handle:
        self._seq += 1
        handle = _Handle(self.now + delay, self._seq, callback)
        self._pending.append(handle)
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for h in self._pending if not h.cancelled)

    def advance(self, seconds: float) -> None:
        """Move time forward, firing due callbacks in deadline order."""
        target = self.now + seconds
        while True:
            due = [h for h in self._pending if not h.cancelled and h.due <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.due, h.seq))
            self._pending.remove(handle)
            self.now = handle.due
            handle.callback()
        self._pending = [h for h in self._pending if not h.cancelled]
        self.now = target


class RecordingVoice:
    """VoiceChannel stand-in that records every command."""

    def __init__(self) -> None:
        self.spoken: list[str] = []
        self.commands: list[str] = []
        self._listening = False
        self._speaking = False

    @property
    def listening(self) -> bool:
        return self._listening

    @property
    def speaking(self) -> bool:
        return self._speaking

    def speak(self, text: str) -> None:
        self.spoken.append(text)
        self.commands.append("speak")

    def start_listening(self) -> None:
        if not self._listening:
            self._listening = True
            self.commands.append("start")

    def stop_listening(self) -> None:
        if self._listening:
            self._listening = False
            self.commands.append("stop")

    def restart(self) -> None:
        self.commands.append("restart")
        self.start_listening()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def voice() -> RecordingVoice:
    return RecordingVoice()


@pytest.fixture
def settings():
    from docent.config import Settings
    return Settings(_env_file=None)
