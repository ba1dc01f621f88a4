#!/usr/bin/env python3
"""
FMus - a terminal file-browser music player.

This module provides the terminal front end:
- File browser over the current directory
- Directory-scoped play queue with shuffle and repeat
- Seeking, volume keys and mouse-wheel volume
- Command mode (:help, :settings, :q) and a settings menu
- MPRIS control from the desktop when a session bus is available
"""

__version__ = "1.0.0"
__author__ = "FMus Team"
__description__ = "A terminal file-browser music player with queue, shuffle, repeat and MPRIS control."

# =============================================================================
# Imports
# =============================================================================
import codecs
import fcntl
import locale
import os
import re
import select
import signal
import struct
import sys
import termios
import tty
import unicodedata
from functools import lru_cache
from pathlib import Path
from typing import Any, List, Optional, Tuple

from logging_config import setup_logging, get_logger, AudioBackendError, FilesystemError
from src.audio import open_audio_backend
from src.config import RepeatMode, SettingsStore, load_settings
from src.control import ControlSurface, display_title, start_control_service
from src.loop import EventLoop, RESIZE
from src.state import StateManager
from src.transport import Transport

logger = get_logger('main')

# =============================================================================
# Constants
# =============================================================================
SEEK_SMALL: int = 1
SEEK_LARGE: int = 5
VOLUME_STEP: int = 5
VOLUME_STEP_FINE: int = 1

ESC: str = "\x1b"
CTRL_C: str = "\x03"
KEY_UP: str = "\x1b[A"
KEY_DOWN: str = "\x1b[B"
KEY_RIGHT: str = "\x1b[C"
KEY_LEFT: str = "\x1b[D"
KEY_SRIGHT: str = "\x1b[1;2C"
KEY_SLEFT: str = "\x1b[1;2D"
KEYS_ENTER = ("\r", "\n")
KEYS_BACKSPACE = ("\x7f", "\x08")

MOUSE_WHEEL_UP: int = 64
MOUSE_WHEEL_DOWN: int = 65
_MOUSE_RE = re.compile(r"\x1b\[<(\d+);(\d+);(\d+)[Mm]")

C_SELECTION: str = "\033[7m"
C_SECONDARY: str = "\033[90m"
C_HEADER: str = "\033[1m"
C_RESET: str = "\033[0m"

PROGRESS_FILL: str = "▒"

SETTINGS_OPTIONS: int = 9

# =============================================================================
# Help registry
# =============================================================================
HELP_ENTRIES: List[Tuple[str, str]] = []


def register_help(command: str, description: str) -> None:
    """Add a line to the help overlay."""
    HELP_ENTRIES.append((command, description))


register_help(":help", "Show help")
register_help(":settings", "Open settings")
register_help(":q", "Quit")
register_help("Enter", "Open directory / play file")
register_help("Space", "Play / pause")
register_help("z / x", "Previous / next track")
register_help("Z / X", "First / last track")
register_help("Left/Right", "Seek 1s (Shift: 5s)")
register_help("s", "Toggle shuffle")
register_help("r", "Cycle repeat (None/Dir/One)")
register_help("= + - _", "Volume +5 +1 -5 -1")
register_help("Esc", "Settings")


# =============================================================================
# Text helpers
# =============================================================================
def _strip_ansi(text: str) -> str:
    """Remove ANSI escape codes from text for accurate length calculation."""
    return re.sub(r"\x1b\[[0-?]*[ -/]*[@-~]", "", text)


@lru_cache(maxsize=4096)
def _char_display_width(ch: str) -> int:
    """Return display width of a single Unicode character (0, 1 or 2)."""
    if not ch:
        return 0
    cat = unicodedata.category(ch)
    if cat in ("Mn", "Me", "Cf"):
        return 0
    ea = unicodedata.east_asian_width(ch)
    if ea in ("F", "W"):
        return 2
    return 1


@lru_cache(maxsize=4096)
def _display_width(text: str) -> int:
    """Return the visible terminal width of `text`, ignoring ANSI escapes."""
    s = _strip_ansi(text)
    return sum(_char_display_width(ch) for ch in s)


def _truncate_to_width(text: str, max_width: int, ellipsis: str = "...") -> str:
    """Truncate `text` (plain text) to fit in `max_width` display columns.

    Adds `ellipsis` when there's room; otherwise hard-truncates to fit.
    """
    if max_width <= 0:
        return ""
    if _display_width(text) <= max_width:
        return text

    e_width = _display_width(ellipsis)
    target = max_width if e_width >= max_width else max_width - e_width

    out = []
    cur = 0
    for ch in text:
        w = _char_display_width(ch)
        if cur + w > target:
            break
        out.append(ch)
        cur += w

    if e_width >= max_width:
        return "".join(out)
    return "".join(out) + ellipsis


def _pad_to_width(text: str, width: int) -> str:
    """Truncate or right-pad `text` to exactly `width` columns."""
    text = _truncate_to_width(text, width, ellipsis="")
    return text + " " * max(0, width - _display_width(text))


def _compose(left: str, right: str, cols: int) -> str:
    """Left-aligned text with `right` flush against the right edge."""
    if not right:
        return _truncate_to_width(left, cols)
    space = cols - _display_width(right) - 1
    return _pad_to_width(_truncate_to_width(left, space), space) + " " + right


def fmt_time(seconds: float) -> str:
    """Format seconds as MM:SS, or H:MM:SS past an hour."""
    s = max(0, int(seconds))
    h, m, r = s // 3600, (s % 3600) // 60, s % 60
    if h > 0:
        return f"{h}:{m:02d}:{r:02d}"
    return f"{m:02d}:{r:02d}"


# =============================================================================
# Terminal input
# =============================================================================
def split_key(buffer: str) -> Tuple[Optional[str], str]:
    """Split the first key (or escape sequence) off the input buffer.

    Returns:
        Tuple of (key or None if the buffer is empty, remaining buffer)
    """
    if not buffer:
        return None, buffer
    if buffer[0] != ESC:
        return buffer[0], buffer[1:]
    if len(buffer) == 1:
        return ESC, ""
    if buffer[1] == "O" and len(buffer) >= 3:
        # Application cursor mode: ESC O A == ESC [ A
        return "\x1b[" + buffer[2], buffer[3:]
    if buffer[1] == "[":
        for i in range(2, len(buffer)):
            if "@" <= buffer[i] <= "~":
                return buffer[:i + 1], buffer[i + 1:]
        return buffer, ""
    return ESC, buffer[1:]


def parse_mouse(key: str) -> Optional[int]:
    """Button code of an SGR mouse report, or None for other keys."""
    match = _MOUSE_RE.fullmatch(key)
    if not match:
        return None
    return int(match.group(1))


def _get_terminal_size() -> Tuple[int, int]:
    """Get actual terminal size using ioctl with fallback to shutil."""
    try:
        if sys.stdout.isatty():
            winsize = struct.pack("HHHH", 0, 0, 0, 0)
            result = fcntl.ioctl(sys.stdout.fileno(), termios.TIOCGWINSZ, winsize)
            rows, cols, _, _ = struct.unpack("HHHH", result)
            if rows > 0 and cols > 0:
                return rows, cols
    except OSError:
        pass

    import shutil

    size = shutil.get_terminal_size()
    return size.lines, size.columns


class Terminal:
    """Raw-mode terminal: bounded-wait key input and frame output.

    A SIGWINCH handler writes to a self-pipe so a resize wakes the input
    wait immediately.
    """

    def __init__(self, stdin=None, stdout=None) -> None:
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout
        self.fd = self.stdin.fileno()
        self._old_attrs: Optional[List[Any]] = None
        self._wake_r, self._wake_w = os.pipe()
        os.set_blocking(self._wake_r, False)
        os.set_blocking(self._wake_w, False)
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""
        self._last_frame: Optional[str] = None
        self._old_winch = None

    def _on_resize(self, signum: Optional[int] = None, frame: Any = None) -> None:
        try:
            os.write(self._wake_w, b"\0")
        except BlockingIOError:
            pass  # a wake-up is already pending

    def enter(self) -> None:
        """Switch to cbreak mode, the alternate screen and mouse reporting."""
        self._old_attrs = termios.tcgetattr(self.fd)
        tty.setcbreak(self.fd)
        self._old_winch = signal.signal(signal.SIGWINCH, self._on_resize)
        self.stdout.write("\033[?1049h\033[?25l\033[?1000h\033[?1006h")
        self.stdout.flush()

    def leave(self) -> None:
        """Restore the terminal to the state found at enter()."""
        self.stdout.write("\033[?1006l\033[?1000l\033[?25h\033[?1049l")
        self.stdout.flush()
        if self._old_winch is not None:
            signal.signal(signal.SIGWINCH, self._old_winch)
            self._old_winch = None
        if self._old_attrs is not None:
            termios.tcsetattr(self.fd, termios.TCSADRAIN, self._old_attrs)
            self._old_attrs = None
        os.close(self._wake_r)
        os.close(self._wake_w)

    def read(self, timeout: float) -> Optional[str]:
        """Return one key, RESIZE, or None after `timeout` seconds."""
        if not self._pending:
            ready, _, _ = select.select([self.fd, self._wake_r], [], [], timeout)
            if self._wake_r in ready:
                while True:
                    try:
                        if not os.read(self._wake_r, 1024):
                            break
                    except BlockingIOError:
                        break
                self._last_frame = None
                return RESIZE
            if self.fd not in ready:
                return None
            data = os.read(self.fd, 1024)
            if not data:
                return None
            self._pending += self._decoder.decode(data)
        key, self._pending = split_key(self._pending)
        return key

    def size(self) -> Tuple[int, int]:
        return _get_terminal_size()

    def draw(self, lines: List[str], force: bool = False) -> None:
        """Write a frame, skipping identical frames unless forced."""
        frame = "".join(f"\033[{i + 1};1H{line}\033[K" for i, line in enumerate(lines))
        if not force and frame == self._last_frame:
            return
        prefix = "\033[2J" if force else ""
        self.stdout.write(prefix + frame + "\033[J")
        self.stdout.flush()
        self._last_frame = frame


# =============================================================================
# Player front end
# =============================================================================
class Player:
    """Maps keys to transport and browser operations and builds frames."""

    def __init__(self, store: SettingsStore, transport: Transport, state: StateManager) -> None:
        self.store = store
        self.settings = store.settings
        self.transport = transport
        self.state = state

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def handle_key(self, key: str) -> bool:
        """Handle one key.

        Returns:
            False when the player should quit
        """
        ui = self.state.ui
        ui.message = ""

        if key == CTRL_C:
            return False
        if ui.edit_field is not None:
            self._handle_edit(key)
            return True
        if ui.show_settings:
            return self._handle_settings(key)
        if ui.show_help:
            if key in KEYS_ENTER or key == ESC:
                ui.show_help = False
            return True
        if ui.command_mode:
            return self._handle_command(key)

        if key == ESC:
            self.state.toggle_overlay("settings")
        elif key == ":":
            self.state.toggle_overlay("command")
        elif parse_mouse(key) is not None:
            self._handle_mouse(parse_mouse(key))
        elif self._handle_volume(key):
            pass
        elif self._handle_navigation(key):
            pass
        elif self._handle_playback(key):
            pass

        self.state.validate_state()
        return True

    def _handle_navigation(self, key: str) -> bool:
        if key == KEY_UP:
            self.state.safe_navigate("up")
        elif key == KEY_DOWN:
            self.state.safe_navigate("down")
        elif key in KEYS_ENTER:
            self._activate_selection()
        else:
            return False
        return True

    def _activate_selection(self) -> None:
        entry = self.state.selected_entry()
        if entry is not None and not entry.is_dir:
            outcome = self.transport.open(entry.path)
            if not outcome:
                self.state.ui.message = f"Cannot play {entry.path.name}: {outcome.reason}"
            return
        try:
            if entry is None:
                self.state.go_up()
            else:
                self.state.change_directory(entry.path)
        except FilesystemError as e:
            # Directory vanished since it was listed
            logger.warning(str(e))
            self.state.ui.message = str(e)
            self.state.refresh()

    def _handle_playback(self, key: str) -> bool:
        transport = self.transport
        if key == " ":
            transport.toggle_pause()
        elif key == "z":
            transport.previous()
        elif key == "x":
            transport.next()
        elif key == "Z":
            if len(transport.queue):
                transport.first()
        elif key == "X":
            if len(transport.queue):
                transport.last()
        elif key in (KEY_LEFT, KEY_SLEFT):
            transport.seek(-(SEEK_SMALL if key == KEY_LEFT else SEEK_LARGE))
        elif key in (KEY_RIGHT, KEY_SRIGHT):
            transport.seek(SEEK_SMALL if key == KEY_RIGHT else SEEK_LARGE)
        elif key == "s":
            transport.toggle_shuffle()
        elif key == "r":
            transport.cycle_repeat()
        else:
            return False
        return True

    def _handle_volume(self, key: str) -> bool:
        delta = {
            "=": VOLUME_STEP,
            "+": VOLUME_STEP_FINE,
            "-": -VOLUME_STEP,
            "_": -VOLUME_STEP_FINE,
        }.get(key)
        if delta is None:
            return False
        self._change_volume(delta)
        return True

    def _handle_mouse(self, button: int) -> None:
        if button == MOUSE_WHEEL_UP:
            self._change_volume(VOLUME_STEP)
        elif button == MOUSE_WHEEL_DOWN:
            self._change_volume(-VOLUME_STEP)

    def _change_volume(self, delta: int) -> None:
        self.settings.last_volume = self.transport.adjust_volume(delta)

    def _handle_command(self, key: str) -> bool:
        ui = self.state.ui
        if key in KEYS_ENTER:
            command = ui.command_buffer.strip()
            self.state.close_overlays()
            return self.run_command(command)
        if key == ESC:
            self.state.close_overlays()
        elif key in KEYS_BACKSPACE:
            ui.command_buffer = ui.command_buffer[:-1]
        elif len(key) == 1 and key.isprintable():
            ui.command_buffer += key
        return True

    def run_command(self, command: str) -> bool:
        """Run a ':' command. Returns False to quit."""
        if command in ("q", "quit"):
            return False
        if command == "help":
            self.state.toggle_overlay("help")
        elif command in ("settings", "s"):
            self.state.toggle_overlay("settings")
        elif command:
            self.state.ui.message = f"Unknown command: {command}"
        return True

    # ------------------------------------------------------------------
    # Settings menu
    # ------------------------------------------------------------------

    def settings_options(self) -> List[str]:
        s = self.settings
        t = self.transport
        return [
            f"Start Path: {s.start_path}",
            f"Repeat Default: {t.repeat_mode.label}",
            f"Shuffle Default: {'On' if t.shuffle else 'Off'}",
            f"Reshuffle On End: {'On' if t.reshuffle_on_end else 'Off'}",
            f"Icon DirUp: {s.icon_dirup}",
            f"Icon NowPlaying: {s.icon_nowplaying}",
            f"Icon NowPlaySel: {s.icon_nowplaying_sel}",
            "Save & Return",
            "Quit",
        ]

    def _handle_settings(self, key: str) -> bool:
        ui = self.state.ui
        if key == KEY_UP:
            ui.settings_cursor = (ui.settings_cursor - 1) % SETTINGS_OPTIONS
        elif key == KEY_DOWN:
            ui.settings_cursor = (ui.settings_cursor + 1) % SETTINGS_OPTIONS
        elif key == ESC:
            self.save_settings()
            self.state.close_overlays()
        elif key in KEYS_ENTER:
            return self._activate_setting(ui.settings_cursor)
        return True

    def _activate_setting(self, index: int) -> bool:
        s = self.settings
        t = self.transport
        if index == 0:
            self._begin_edit("start_path", s.start_path)
        elif index == 1:
            t.cycle_repeat()
        elif index == 2:
            t.toggle_shuffle()
        elif index == 3:
            t.reshuffle_on_end = not t.reshuffle_on_end
        elif index == 4:
            self._begin_edit("icon_dirup", s.icon_dirup)
        elif index == 5:
            self._begin_edit("icon_nowplaying", s.icon_nowplaying)
        elif index == 6:
            self._begin_edit("icon_nowplaying_sel", s.icon_nowplaying_sel)
        elif index == 7:
            self.save_settings()
            self.state.close_overlays()
        elif index == 8:
            self.save_settings()
            return False
        return True

    def _begin_edit(self, field_name: str, initial: str) -> None:
        self.state.ui.edit_field = field_name
        self.state.ui.edit_buffer = initial

    def _handle_edit(self, key: str) -> None:
        ui = self.state.ui
        if key == ESC:
            ui.edit_field = None
        elif key in KEYS_ENTER:
            self._commit_edit(ui.edit_field, ui.edit_buffer)
            ui.edit_field = None
        elif key in KEYS_BACKSPACE:
            ui.edit_buffer = ui.edit_buffer[:-1]
        elif len(key) == 1 and key.isprintable():
            ui.edit_buffer += key

    def _commit_edit(self, field_name: str, value: str) -> None:
        if field_name == "start_path":
            # Keep the old path unless the new one exists
            if value and Path(value).expanduser().exists():
                self.settings.start_path = value
            else:
                self.state.ui.message = f"No such path: {value}"
            return
        self.store.set(field_name, value)

    def sync_settings(self) -> None:
        """Copy live transport modes into the settings for persistence."""
        s = self.settings
        s.repeat_mode = self.transport.repeat_mode
        s.shuffle_default = self.transport.shuffle
        s.reshuffle_on_end = self.transport.reshuffle_on_end
        s.last_volume = self.transport.volume

    def save_settings(self) -> bool:
        self.sync_settings()
        return self.store.save()

    # ------------------------------------------------------------------
    # Frames
    # ------------------------------------------------------------------

    def build_screen(self, rows: int, cols: int) -> List[str]:
        """Render the current state as `rows` lines of at most `cols` columns."""
        ui = self.state.ui
        if ui.edit_field is not None:
            lines = self._edit_lines(cols)
        elif ui.show_settings:
            lines = self._settings_lines(cols)
        elif ui.show_help:
            lines = self._help_lines(cols)
        else:
            lines = self._main_lines(rows, cols)
        lines = lines[:rows]
        return lines + [""] * (rows - len(lines))

    def _help_lines(self, cols: int) -> List[str]:
        lines = ["Available Commands:", ""]
        for command, description in HELP_ENTRIES:
            lines.append(_truncate_to_width(f"  {_pad_to_width(command, 13)} {description}", cols))
        lines.append("")
        lines.append("Press Enter or Esc to return...")
        return lines

    def _settings_lines(self, cols: int) -> List[str]:
        lines = ["Settings", ""]
        for i, option in enumerate(self.settings_options()):
            text = _truncate_to_width(f"  {option}", cols)
            if i == self.state.ui.settings_cursor:
                text = f"{C_SELECTION}{text}{C_RESET}"
            lines.append(text)
        return lines

    def _edit_lines(self, cols: int) -> List[str]:
        ui = self.state.ui
        if ui.edit_field == "start_path":
            prompt = "Enter new start path (Esc to cancel):"
        else:
            label = ui.edit_field.replace("_", " ")
            prompt = f"New {label} (Esc to cancel):"
        return [_truncate_to_width(prompt, cols), _truncate_to_width(f"> {ui.edit_buffer}", cols)]

    def _main_lines(self, rows: int, cols: int) -> List[str]:
        nav = self.state.navigation
        header = f"{C_HEADER}fmus{C_RESET}  {C_SECONDARY}{_truncate_to_width(str(nav.cwd), cols - 7)}{C_RESET}"
        lines = [header]
        lines.extend(self._browser_lines(max(0, rows - 4), cols))
        lines.extend(self._status_lines(cols))
        return lines

    def _browser_lines(self, height: int, cols: int) -> List[str]:
        s = self.settings
        nav = self.state.navigation
        queue = self.transport.queue
        self.state.adjust_scroll(height)
        active = self.transport.active_track
        now_path = active.path if active is not None else None

        lines = []
        for i in range(height):
            idx = nav.scroll_offset + i
            if idx >= nav.rows:
                lines.append("")
                continue
            selected = idx == nav.cursor
            indicator = ""
            if idx == 0:
                icon = " > " if selected else "   "
                name = s.icon_dirup
            else:
                entry = nav.entries[idx - 1]
                if entry.path == now_path:
                    icon = s.icon_nowplaying_sel if selected else s.icon_nowplaying
                else:
                    icon = " > " if selected else "   "
                name = entry.name
                if not entry.is_dir:
                    pos = queue.position_of(entry.path)
                    if pos is not None:
                        indicator = f"[{pos}/{len(queue)}]"
            line = _compose(_pad_to_width(icon, 5) + name, indicator, cols)
            if selected:
                line = f"{C_SELECTION}{line}{C_RESET}"
            lines.append(line)
        return lines

    def _status_lines(self, cols: int) -> List[str]:
        t = self.transport
        ui = self.state.ui
        if ui.command_mode:
            bottom = f":{ui.command_buffer}"
        elif ui.message:
            bottom = ui.message
        else:
            bottom = f"Vol: {t.volume}%"
        bottom = _truncate_to_width(bottom, cols)

        if t.active_track is None:
            return ["", "", bottom]

        elapsed = int(t.position)
        if t.duration > 0:
            elapsed = min(t.duration, elapsed)
            fill = int(elapsed / t.duration * cols + 0.5)
        else:
            fill = 0
        bar = PROGRESS_FILL * fill + " " * (cols - fill)

        mode = f"[{'S' if t.shuffle else '-'}|{t.repeat_mode.short}]"
        status = f"{fmt_time(elapsed)}/{fmt_time(t.duration)} {mode}"
        if t.paused:
            status += " [pause]"
        title = display_title(t.active_track)
        return [bar, _compose(title, status, cols), bottom]


# =============================================================================
# Main Function
# =============================================================================
def run_player(store: SettingsStore, backend, start_dir: Path) -> int:
    """Wire up the engine around an open backend and run the event loop."""
    settings = store.settings
    transport = Transport(
        backend,
        repeat_mode=RepeatMode(settings.repeat_mode),
        shuffle=settings.shuffle_default,
        reshuffle_on_end=settings.reshuffle_on_end,
        volume=store.resolve_volume(),
    )
    surface = ControlSurface(transport)
    control = start_control_service(surface)
    player = Player(store, transport, StateManager(start_dir))
    terminal = Terminal()

    def render(force: bool) -> None:
        rows, cols = terminal.size()
        terminal.draw(player.build_screen(rows, cols), force)

    loop = EventLoop(transport, control, terminal, player.handle_key, render,
                     poll_interval=settings.poll_interval)

    def _stop(signum: Optional[int] = None, frame: Any = None) -> None:
        logger.info(f"Received signal {signum}, shutting down")
        loop.stop()

    signal.signal(signal.SIGTERM, _stop)
    signal.signal(signal.SIGHUP, _stop)

    terminal.enter()
    try:
        render(True)
        loop.run()
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        terminal.leave()
        loop.control.close()
        transport.close()
        player.save_settings()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the music player."""
    argv = sys.argv[1:] if argv is None else argv

    if "--version" in argv or "-v" in argv:
        print(f"fmus {__version__}")
        print(f"{__description__}")
        print(f"Author: {__author__}")
        return 0
    if "--help" in argv or "-h" in argv:
        print(f"fmus {__version__}")
        print("")
        print("Usage:")
        print("  fmus              # Browse from the configured start path")
        print("  fmus <directory>  # Browse from <directory>")
        print("  fmus --version    # Show version info")
        print("  fmus --help       # Show this help")
        return 0

    store = load_settings()
    # Without a terminal UI, stderr is free for log records
    interactive = sys.stdin.isatty()
    setup_logging(store.settings.log_level, store.settings.log_file,
                  console=not interactive)
    try:
        locale.setlocale(locale.LC_ALL, "")
    except locale.Error as e:
        logger.warning(f"Falling back to C locale for sorting: {e}")

    start_dir = Path(argv[0]).expanduser() if argv else store.start_directory()
    if not start_dir.is_dir():
        print(f"Error: not a directory: {start_dir}", file=sys.stderr)
        return 2

    if not interactive:
        logger.error("Standard input is not a terminal")
        print("Error: Must run in interactive terminal", file=sys.stderr)
        return 1

    try:
        with open_audio_backend() as backend:
            return run_player(store, backend, start_dir.absolute())
    except AudioBackendError as e:
        logger.critical(f"Audio backend unavailable: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
