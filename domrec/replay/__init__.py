"""Replay module - rebuild a recording under a host and play it back."""

from .overlay import CaretOverlay, CursorOverlay
from .player import PlayOptions, Player, ReplayConfig
from .scheduling import (
    AsyncioScheduler,
    ImageDecoder,
    ManualScheduler,
    ScheduledImageDecoder,
    Scheduler,
)
from .stylesheets import StylesheetCache, StylesheetLoader, rewrite_resource_url

__all__ = [
    # Player
    "Player",
    "PlayOptions",
    "ReplayConfig",
    # Scheduling
    "Scheduler",
    "AsyncioScheduler",
    "ManualScheduler",
    "ImageDecoder",
    "ScheduledImageDecoder",
    # Stylesheets
    "StylesheetCache",
    "StylesheetLoader",
    "rewrite_resource_url",
    # Overlay
    "CursorOverlay",
    "CaretOverlay",
]
