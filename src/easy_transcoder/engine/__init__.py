"""Engine layer: task model, registry, worker, progress and resolution."""
from __future__ import annotations

from .exceptions import (
    ConfigError,
    FileSwapError,
    InvalidTransitionError,
    MetricError,
    ProbeError,
    ProcessError,
    ProfileNotFoundError,
    QueueFullError,
    ResolutionStateError,
    TaskNotFoundError,
    TempAllocationError,
    TranscoderError,
)
from .heartbeat import HeartbeatLoop
from .probe import MediaProber
from .processor import TaskProcessor
from .profiles import CodecFilter, Profile, ProfileRegistry, VIDEO_EXTENSIONS
from .progress import ProgressChannel, ProgressParser
from .registry import TaskRegistry
from .resolver import Resolver, replace_file
from .runner import EncoderHandle, ExitResult, ProcessRunner
from .status import TaskStatusBroadcaster
from .stop_strategy import StopStrategy
from .task import CancelState, Task, TaskSnapshot, TaskStatus

__all__ = [
    "CancelState",
    "CodecFilter",
    "ConfigError",
    "EncoderHandle",
    "ExitResult",
    "FileSwapError",
    "HeartbeatLoop",
    "InvalidTransitionError",
    "MediaProber",
    "MetricError",
    "ProbeError",
    "ProcessError",
    "ProcessRunner",
    "Profile",
    "ProfileNotFoundError",
    "ProfileRegistry",
    "ProgressChannel",
    "ProgressParser",
    "QueueFullError",
    "ResolutionStateError",
    "Resolver",
    "StopStrategy",
    "Task",
    "TaskNotFoundError",
    "TaskProcessor",
    "TaskRegistry",
    "TaskSnapshot",
    "TaskStatus",
    "TaskStatusBroadcaster",
    "TempAllocationError",
    "TranscoderError",
    "VIDEO_EXTENSIONS",
    "replace_file",
]
