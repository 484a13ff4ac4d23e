"""Transient status notice with timed auto-dismiss."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from habit_vault.constants import NOTICE_DISMISS_SECONDS, NOTICE_ERROR_DISMISS_SECONDS
from habit_vault.session.state import NoticePhase, SessionState, StatusNotice

NoticeListener = Callable[[StatusNotice | None], None]


class StatusMachine:
    """Latest-wins notice holder writing into ``SessionState.notice``.

    Each notice gets its own dismissal timer; the timer only clears the notice
    whose serial it was scheduled for, so a superseded notice can never clear
    a newer one. Outside a running event loop no timer is scheduled and the
    notice stays until replaced or cleared.
    """

    def __init__(
        self,
        state: SessionState,
        *,
        dismiss_seconds: float = NOTICE_DISMISS_SECONDS,
        error_dismiss_seconds: float = NOTICE_ERROR_DISMISS_SECONDS,
        on_change: NoticeListener | None = None,
    ) -> None:
        if dismiss_seconds <= 0 or error_dismiss_seconds <= 0:
            raise ValueError("dismiss delays must be > 0")
        self._state = state
        self._dismiss_seconds = dismiss_seconds
        self._error_dismiss_seconds = error_dismiss_seconds
        self._on_change = on_change
        self._serial = 0
        self._timer: asyncio.TimerHandle | None = None

    @property
    def current(self) -> StatusNotice | None:
        return self._state.notice

    def delay_for(self, phase: NoticePhase) -> float:
        if phase == NoticePhase.ERROR:
            return self._error_dismiss_seconds
        return self._dismiss_seconds

    def notify(self, phase: NoticePhase, message: str) -> StatusNotice:
        """Replace the current notice and schedule its dismissal."""
        self._serial += 1
        notice = StatusNotice(phase=NoticePhase(phase), message=message, serial=self._serial)
        self._cancel_timer()
        self._state.notice = notice

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            self._timer = loop.call_later(
                self.delay_for(notice.phase), self._dismiss, notice.serial
            )

        self._emit()
        return notice

    def pending(self, message: str) -> StatusNotice:
        return self.notify(NoticePhase.PENDING, message)

    def success(self, message: str) -> StatusNotice:
        return self.notify(NoticePhase.SUCCESS, message)

    def error(self, message: str) -> StatusNotice:
        return self.notify(NoticePhase.ERROR, message)

    def clear(self) -> None:
        self._cancel_timer()
        if self._state.notice is not None:
            self._state.notice = None
            self._emit()

    def close(self) -> None:
        """Cancel any pending dismissal without touching the current notice."""
        self._cancel_timer()

    def _dismiss(self, serial: int) -> None:
        current = self._state.notice
        if current is None or current.serial != serial:
            return
        self._timer = None
        self._state.notice = None
        self._emit()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _emit(self) -> None:
        if self._on_change is not None:
            self._on_change(self._state.notice)


__all__ = ["NoticeListener", "StatusMachine"]
