"""Initialization guard around a cipher engine."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog

from habit_vault.collaborators.base import CipherEngine, RevealSubmit
from habit_vault.collaborators.errors import InitializationError
from habit_vault.domain.models import EncryptedPayload, RevealResult


class GuardedCipherEngine:
    """Wrap an engine so initialization is idempotent and gates every other call.

    ``initialize`` while another initialization is pending returns immediately.
    A failed initialization leaves the engine unusable until ``initialize`` is
    called again, which the session only does on the next connect.
    """

    def __init__(self, engine: CipherEngine, *, logger: Any | None = None) -> None:
        self._engine = engine
        self._initialized = False
        self._initializing = False
        self._last_error: InitializationError | None = None
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_initializing(self) -> bool:
        return self._initializing

    @property
    def last_error(self) -> InitializationError | None:
        return self._last_error

    async def initialize(self) -> None:
        if self._initialized or self._initializing:
            return

        self._initializing = True
        try:
            await self._engine.initialize()
        except Exception as exc:
            error = exc if isinstance(exc, InitializationError) else InitializationError(exc)
            self._last_error = error
            self._logger.error("cipher_engine_init_failed", error=str(exc))
            if error is exc:
                raise
            raise error from exc
        finally:
            self._initializing = False

        self._initialized = True
        self._last_error = None
        self._logger.info("cipher_engine_initialized")

    def reset(self) -> None:
        """Forget the initialized state, e.g. after the principal disconnects."""
        self._initialized = False
        self._last_error = None

    async def encrypt(self, target: str, principal: str, value: int) -> EncryptedPayload:
        self._ensure_ready()
        return await self._engine.encrypt(target, principal, value)

    async def verify_reveal(
        self,
        handles: Sequence[str],
        target: str,
        submit: RevealSubmit,
    ) -> RevealResult:
        self._ensure_ready()
        return await self._engine.verify_reveal(handles, target, submit)

    def _ensure_ready(self) -> None:
        if not self._initialized:
            raise InitializationError("cipher engine is not initialized")


__all__ = ["GuardedCipherEngine"]
