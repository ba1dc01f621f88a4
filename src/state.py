"""
Terminal UI state for fmus.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from logging_config import get_logger, FilesystemError
from src.browser import Entry, list_entries

logger = get_logger('state')

OVERLAYS = ("help", "settings", "command", "edit")


@dataclass
class NavigationState:
    """Browser position.

    Row 0 is the "up one directory" entry; entries start at row 1.
    """
    cwd: Path = field(default_factory=Path.home)
    entries: List[Entry] = field(default_factory=list)
    cursor: int = 0
    scroll_offset: int = 0

    @property
    def rows(self) -> int:
        return len(self.entries) + 1


@dataclass
class UIState:
    """Overlay and prompt state."""
    show_help: bool = False
    show_settings: bool = False
    command_mode: bool = False
    command_buffer: str = ""
    settings_cursor: int = 0
    # Text prompt opened from the settings menu
    edit_field: Optional[str] = None
    edit_buffer: str = ""
    message: str = ""


class StateManager:
    """Browser and overlay state of the terminal UI."""

    def __init__(self, cwd: Optional[Path] = None):
        self.navigation = NavigationState()
        self.ui = UIState()
        if cwd is not None:
            self.change_directory(cwd)

    def change_directory(self, path: Path) -> None:
        """List *path* and reset the selection to the top.

        Raises:
            FilesystemError: If *path* is not a directory
        """
        path = Path(path).absolute()
        if not path.is_dir():
            raise FilesystemError(f"Not a directory: {path}")
        self.navigation.cwd = path
        self.navigation.entries = list_entries(self.navigation.cwd)
        self.navigation.cursor = 0
        self.navigation.scroll_offset = 0
        logger.debug(f"Changed directory to {path} ({len(self.navigation.entries)} entries)")

    def go_up(self) -> None:
        parent = self.navigation.cwd.parent
        if parent != self.navigation.cwd:
            self.change_directory(parent)

    def refresh(self) -> None:
        """Re-list the current directory, keeping the cursor in range."""
        cursor = self.navigation.cursor
        self.navigation.entries = list_entries(self.navigation.cwd)
        self.navigation.cursor = min(cursor, self.navigation.rows - 1)

    def selected_entry(self) -> Optional[Entry]:
        """Entry under the cursor, or None for the up-directory row."""
        cursor = self.navigation.cursor
        if cursor == 0:
            return None
        return self.navigation.entries[cursor - 1]

    def safe_navigate(self, direction: str) -> None:
        """Move the cursor, wrapping around at both ends."""
        rows = self.navigation.rows
        if direction == "up":
            self.navigation.cursor = (self.navigation.cursor - 1) % rows
        elif direction == "down":
            self.navigation.cursor = (self.navigation.cursor + 1) % rows
        logger.debug(f"Navigated {direction} to position {self.navigation.cursor}")

    def adjust_scroll(self, visible: int) -> None:
        """Keep the cursor inside a window of *visible* rows."""
        nav = self.navigation
        if visible <= 0:
            nav.scroll_offset = nav.cursor
            return
        if nav.cursor < nav.scroll_offset:
            nav.scroll_offset = nav.cursor
        elif nav.cursor >= nav.scroll_offset + visible:
            nav.scroll_offset = nav.cursor - visible + 1

    def validate_state(self) -> List[str]:
        """Validate current state, fix what is out of range, and return the issues."""
        issues = []
        nav = self.navigation

        if not 0 <= nav.cursor < nav.rows:
            issues.append(f"Cursor out of bounds: {nav.cursor}")
            nav.cursor = max(0, min(nav.rows - 1, nav.cursor))

        if nav.scroll_offset < 0 or nav.scroll_offset > nav.cursor:
            issues.append(f"Scroll offset out of bounds: {nav.scroll_offset}")
            nav.scroll_offset = max(0, min(nav.cursor, nav.scroll_offset))

        active = [name for name, on in self._overlays() if on]
        if len(active) > 1:
            issues.append(f"Multiple overlays active: {active}")
            self.close_overlays()

        if issues:
            logger.warning(f"State validation issues: {issues}")
        return issues

    def _overlays(self):
        return [
            ("help", self.ui.show_help),
            ("settings", self.ui.show_settings),
            ("command", self.ui.command_mode),
            ("edit", self.ui.edit_field is not None),
        ]

    def close_overlays(self) -> None:
        self.ui.show_help = False
        self.ui.show_settings = False
        self.ui.command_mode = False
        self.ui.command_buffer = ""
        self.ui.edit_field = None
        self.ui.edit_buffer = ""

    def toggle_overlay(self, overlay_name: str) -> None:
        """Show one overlay, closing any other."""
        was_open = dict(self._overlays()).get(overlay_name, False)
        self.close_overlays()
        if was_open:
            return
        if overlay_name == "help":
            self.ui.show_help = True
        elif overlay_name == "settings":
            self.ui.show_settings = True
            self.ui.settings_cursor = 0
        elif overlay_name == "command":
            self.ui.command_mode = True
        logger.debug(f"Activated overlay: {overlay_name}")
