"""Preconditions shared by the sync, creation and reveal coordinators."""

from __future__ import annotations

from typing import Final

from habit_vault.collaborators.base import LedgerHandles
from habit_vault.collaborators.errors import AuthenticationRequiredError
from habit_vault.session.state import SessionState
from habit_vault.session.status import StatusMachine

MSG_CONNECT_FIRST: Final[str] = "Please connect wallet first"


def require_principal(state: SessionState, status: StatusMachine) -> str | None:
    """Return the connected principal, or post the connect notice and return ``None``."""
    if state.principal:
        return state.principal
    status.error(MSG_CONNECT_FIRST)
    return None


def ensure_principal(state: SessionState) -> str:
    if not state.principal:
        raise AuthenticationRequiredError(MSG_CONNECT_FIRST)
    return state.principal


async def resolve_target(state: SessionState, handles: LedgerHandles) -> str:
    """Address the encryption is bound to; cached on the state after the first lookup."""
    if not state.contract_address:
        state.contract_address = await handles.reader.get_address()
    return state.contract_address


__all__ = ["MSG_CONNECT_FIRST", "ensure_principal", "require_principal", "resolve_target"]
