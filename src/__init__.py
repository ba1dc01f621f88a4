"""
FMus - terminal file-browser music player engine.
"""

__version__ = "1.0.0"
__author__ = "FMus Team"
__description__ = "Playback queue, transport, clock and event loop for the fmus terminal player."

# Import all modules; src.mpris is loaded on demand since it needs a D-Bus stack
from . import audio
from . import browser
from . import clock
from . import config
from . import playqueue
from . import transport
from . import control
from . import loop
from . import state

# Re-export key classes and functions
__all__ = [
    # Audio
    'AudioBackend',
    'PygameBackend',
    'LoadedTrack',
    'open_audio_backend',

    # Queue and transport
    'PlayQueue',
    'Track',
    'Transport',
    'TransportState',
    'Outcome',
    'PlaybackClock',

    # Control and loop
    'ControlSurface',
    'ControlService',
    'EventLoop',

    # Config
    'Settings',
    'SettingsStore',
    'RepeatMode',
    'load_settings',
    'save_settings',
]

from .audio import AudioBackend, PygameBackend, LoadedTrack, open_audio_backend
from .playqueue import PlayQueue, Track
from .transport import Transport, TransportState, Outcome
from .clock import PlaybackClock
from .control import ControlSurface, ControlService
from .loop import EventLoop
from .config import Settings, SettingsStore, RepeatMode, load_settings, save_settings
