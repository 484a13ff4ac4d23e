"""Coordinators for the refresh, create and reveal protocols."""

from habit_vault.coordinators.creation import CreationCoordinator
from habit_vault.coordinators.reveal import RevealCoordinator
from habit_vault.coordinators.sync import SyncController

__all__ = ["CreationCoordinator", "RevealCoordinator", "SyncController"]
