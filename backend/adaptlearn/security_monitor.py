from __future__ import annotations
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel

from .domain import ViolationKind


class Signal(str, Enum):
    VISIBILITY_HIDDEN = "visibility_hidden"
    VISIBILITY_VISIBLE = "visibility_visible"
    FULLSCREEN_ENTERED = "fullscreen_entered"
    FULLSCREEN_EXITED = "fullscreen_exited"
    COPY = "copy"
    PASTE = "paste"
    CONTEXT_MENU = "contextmenu"


BLOCKED_SIGNALS = {Signal.COPY, Signal.PASTE, Signal.CONTEXT_MENU}


class SignalResult(BaseModel):
    # "violation", "blocked", "noted" or "ignored"
    action: str
    warning: Optional[str] = None
    violation: Optional[ViolationKind] = None


class SecurityMonitor:
    """Turns browser environment signals into exam violations.

    Observers are live only between attach() and detach(); anything arriving
    outside that window is ignored.
    """

    def __init__(self, on_violation: Callable[[ViolationKind], Optional[str]]) -> None:
        self._on_violation = on_violation
        self.attached = False
        self.fullscreen_held = False

    def attach(self, fullscreen_granted: bool) -> None:
        self.attached = True
        self.fullscreen_held = bool(fullscreen_granted)

    def detach(self) -> None:
        self.attached = False
        self.fullscreen_held = False

    def handle(self, signal: Signal) -> SignalResult:
        if not self.attached:
            return SignalResult(action="ignored")
        if signal in BLOCKED_SIGNALS:
            return SignalResult(action="blocked", warning="Copy/paste is disabled during the exam.")
        if signal == Signal.VISIBILITY_HIDDEN:
            return self._violation(ViolationKind.TAB_SWITCH)
        if signal == Signal.FULLSCREEN_ENTERED:
            self.fullscreen_held = True
            return SignalResult(action="noted")
        if signal == Signal.FULLSCREEN_EXITED:
            if not self.fullscreen_held:
                return SignalResult(action="noted")
            self.fullscreen_held = False
            return self._violation(ViolationKind.FULLSCREEN_EXIT)
        return SignalResult(action="noted")

    def _violation(self, kind: ViolationKind) -> SignalResult:
        warning = self._on_violation(kind)
        return SignalResult(action="violation", warning=warning, violation=kind)
