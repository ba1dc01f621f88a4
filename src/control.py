"""
Control surface: the external view of the transport.

Keyboard input and external control calls drive the same Transport, and
the surface publishes every change it observes, so both views agree.
"""
import os
from typing import Any, Callable, Dict, List, Optional

from logging_config import get_logger, ControlSurfaceError
from src.playqueue import Track
from src.transport import Outcome, Transport, TransportState

logger = get_logger('control')

IDENTITY: str = "FMus"
DESKTOP_ENTRY: str = "fmus"

Publisher = Callable[[Dict[str, Any]], None]


def display_title(track: Track) -> str:
    """Track name as valid UTF-8 text.

    Undecodable bytes in file names are replaced rather than passed on.
    """
    return os.fsencode(track.name).decode("utf-8", errors="replace")


class ControlSurface:
    """Maps transport state to playback properties and commands to transport calls."""

    def __init__(self, transport: Transport) -> None:
        self.transport = transport
        self._publishers: List[Publisher] = []
        self._published: Dict[str, Any] = self.player_state()
        transport.subscribe(self._on_transport_change)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def playback_status(self) -> str:
        # Stopped is reported as Paused with empty metadata
        if self.transport.state == TransportState.PLAYING:
            return "Playing"
        return "Paused"

    @property
    def metadata(self) -> Dict[str, str]:
        track = self.transport.active_track
        if track is None or self.transport.state == TransportState.STOPPED:
            return {}
        return {"xesam:title": display_title(track)}

    @property
    def position_us(self) -> int:
        return int(self.transport.position * 1_000_000)

    def root_properties(self) -> Dict[str, Any]:
        return {
            "CanQuit": False,
            "CanRaise": False,
            "HasTrackList": False,
            "Identity": IDENTITY,
            "DesktopEntry": DESKTOP_ENTRY,
        }

    def player_state(self) -> Dict[str, Any]:
        """Properties that change with the transport."""
        return {
            "PlaybackStatus": self.playback_status,
            "Metadata": self.metadata,
        }

    def player_properties(self) -> Dict[str, Any]:
        props = self.player_state()
        props.update({
            "Position": self.position_us,
            "CanGoNext": True,
            "CanGoPrevious": True,
            "CanPlay": True,
            "CanPause": True,
            "CanSeek": False,
            "CanControl": True,
        })
        return props

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def play(self) -> Outcome:
        return self.transport.play()

    def pause(self) -> Outcome:
        return self.transport.pause()

    def play_pause(self) -> Outcome:
        return self.transport.toggle_pause()

    def next(self) -> Outcome:
        return self.transport.next()

    def previous(self) -> Outcome:
        return self.transport.previous()

    def dispatch(self, method: str) -> Optional[Outcome]:
        """Run a player command by its protocol name."""
        handler = {
            "Play": self.play,
            "Pause": self.pause,
            "PlayPause": self.play_pause,
            "Next": self.next,
            "Previous": self.previous,
        }.get(method)
        if handler is None:
            logger.debug(f"Unsupported control method: {method}")
            return None
        outcome = handler()
        logger.debug(f"Control {method}: {outcome}")
        return outcome

    # ------------------------------------------------------------------
    # Change publication
    # ------------------------------------------------------------------

    def add_publisher(self, publisher: Publisher) -> None:
        """Register a sink for changed properties."""
        self._publishers.append(publisher)

    def _on_transport_change(self, transport: Transport) -> None:
        current = self.player_state()
        changed = {k: v for k, v in current.items() if self._published.get(k) != v}
        self._published = current
        if not changed:
            return
        for publisher in self._publishers:
            publisher(changed)


class ControlService:
    """Terminal-only control service: nothing to service."""

    def process_pending(self) -> bool:
        """Handle at most one pending external request without blocking."""
        return False

    def close(self) -> None:
        pass


def start_control_service(surface: ControlSurface) -> ControlService:
    """Expose *surface* over MPRIS, or degrade to terminal-only control."""
    try:
        from src.mpris import MprisService
    except (ImportError, ValueError) as e:
        logger.warning(f"MPRIS support unavailable ({e}), terminal-only control")
        return ControlService()
    try:
        return MprisService(surface)
    except ControlSurfaceError as e:
        logger.warning(f"{e}, terminal-only control")
        return ControlService()
