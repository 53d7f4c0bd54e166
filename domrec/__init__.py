"""domrec - record a live document tree and replay it later.

Example:
    recorder = start_recording(document.body.first_child)
    ...
    recording = recorder.stop()
    player = Player(host_document, recording)
    player.play(PlayOptions(loop=True))
"""

from .config import Settings, get_settings
from .errors import DomRecError, RecorderError, ReplayError
from .recording import Recorder, RecorderConfig, Recording, start_recording
from .replay import PlayOptions, Player, ReplayConfig

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "get_settings",
    "DomRecError",
    "RecorderError",
    "ReplayError",
    "Recorder",
    "RecorderConfig",
    "Recording",
    "start_recording",
    "Player",
    "PlayOptions",
    "ReplayConfig",
]
