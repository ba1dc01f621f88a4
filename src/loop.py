"""
Event loop: the single scheduling authority of the player.
"""
from typing import Callable, Optional, Protocol

from logging_config import get_logger, ControlSurfaceError
from src.control import ControlService
from src.transport import Transport

logger = get_logger('loop')

# Input event delivered when the terminal is resized
RESIZE: str = "<resize>"

POLL_MIN: float = 0.01
POLL_MAX: float = 0.05


class InputSource(Protocol):
    def read(self, timeout: float) -> Optional[str]:
        """Return one input event, or None if none arrived within *timeout*."""
        ...


class EventLoop:
    """Cooperative loop servicing control calls, input, and track ends.

    Each tick, in order: one pending external control request, one input
    event (the only blocking wait), the finished flag, then a render.
    """

    def __init__(self, transport: Transport, control: ControlService,
                 input_source: InputSource, handle_input: Callable[[str], bool],
                 render: Callable[[bool], None], poll_interval: float = 0.03) -> None:
        self.transport = transport
        self.control = control
        self.input_source = input_source
        self.handle_input = handle_input
        self.render = render
        self.poll_interval = max(POLL_MIN, min(POLL_MAX, poll_interval))
        self.running = False
        self.ticks = 0

    def _service_control(self) -> None:
        try:
            self.control.process_pending()
        except ControlSurfaceError as e:
            logger.warning(f"Control surface failed ({e}), continuing terminal-only")
            self.control.close()
            self.control = ControlService()

    def tick(self) -> bool:
        """Run one iteration.

        Returns:
            False once a quit was requested
        """
        self.ticks += 1
        self._service_control()

        force = False
        event = self.input_source.read(self.poll_interval)
        if event == RESIZE:
            force = True
        elif event is not None:
            if not self.handle_input(event):
                logger.info("Quit requested")
                return False

        self.transport.poll_finished()
        self.render(force)
        return True

    def run(self) -> None:
        """Tick until quit or stop()."""
        self.running = True
        logger.info("Event loop started")
        try:
            while self.running and self.tick():
                pass
        finally:
            self.running = False
            logger.info(f"Event loop finished after {self.ticks} ticks")

    def stop(self) -> None:
        self.running = False
