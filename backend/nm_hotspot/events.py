"""
Messages exchanged between the hotspot worker and the presentation layer.

Intent flows one way (ToggleCommand / RestartCommand, presentation -> worker)
and state the other (StatusUpdate / ToggleStarted / ToggleCompleted,
worker -> presentation).
"""

from dataclasses import dataclass, field
from typing import Dict, List, Union


@dataclass(frozen=True)
class CommandResult:
    ok: bool
    message: str


@dataclass(frozen=True)
class ToggleCommand:
    pass


@dataclass(frozen=True)
class RestartCommand:
    # Settings record as it was before the change; the running profile
    # (if any) was created from it.
    previous: Dict[str, str]


HotspotCommand = Union[ToggleCommand, RestartCommand]


@dataclass(frozen=True)
class StatusUpdate:
    active: bool
    clients: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ToggleStarted:
    # Lifecycle state observed right before the start/stop call.
    was_active: bool


@dataclass(frozen=True)
class ToggleCompleted:
    result: CommandResult


HotspotEvent = Union[StatusUpdate, ToggleStarted, ToggleCompleted]
