import pytest

import fmus
from fmus import (
    Player, split_key, parse_mouse, fmt_time, _truncate_to_width, _display_width,
    ESC, CTRL_C, KEY_UP, KEY_DOWN, KEY_RIGHT, KEY_SRIGHT, KEY_LEFT,
)
from src.config import RepeatMode, SettingsStore
from src.state import StateManager
from src.transport import TransportState


@pytest.fixture
def store(tmp_path):
    return SettingsStore(tmp_path / ".fmus-settings")


@pytest.fixture
def player(store, transport, temp_music_dir):
    return Player(store, transport, StateManager(temp_music_dir))


def press(player, *keys):
    result = True
    for key in keys:
        result = player.handle_key(key)
    return result


def play_first_track(player):
    # Rows: up, album/, a.mp3, b.mp3, c.mp3
    press(player, KEY_DOWN, KEY_DOWN, "\r")


class TestKeyParsing:
    """Tests for splitting raw terminal input into keys."""

    def test_plain_characters(self):
        assert split_key("ab") == ("a", "b")

    def test_empty_buffer(self):
        assert split_key("") == (None, "")

    def test_arrow_key(self):
        assert split_key("\x1b[A") == (KEY_UP, "")

    def test_shifted_arrow_with_trailing_input(self):
        assert split_key("\x1b[1;2Cx") == (KEY_SRIGHT, "x")

    def test_application_cursor_mode(self):
        assert split_key("\x1bOD") == (KEY_LEFT, "")

    def test_lone_escape(self):
        assert split_key("\x1b") == (ESC, "")

    def test_mouse_report(self):
        key, rest = split_key("\x1b[<65;10;4Mq")

        assert parse_mouse(key) == 65
        assert rest == "q"

    def test_parse_mouse_ignores_keys(self):
        assert parse_mouse("x") is None
        assert parse_mouse(KEY_UP) is None


class TestFormatting:
    """Tests for text helpers."""

    @pytest.mark.parametrize("seconds,expected", [
        (0, "00:00"),
        (65, "01:05"),
        (3725, "1:02:05"),
        (-3, "00:00"),
    ])
    def test_fmt_time(self, seconds, expected):
        assert fmt_time(seconds) == expected

    def test_truncate_with_ellipsis(self):
        assert _truncate_to_width("hello world", 8) == "hello..."

    def test_truncate_wide_characters(self):
        text = _truncate_to_width("日本語の曲名.mp3", 7)

        assert _display_width(text) <= 7

    def test_no_truncation_when_fits(self):
        assert _truncate_to_width("short", 10) == "short"


class TestPlaybackKeys:
    """Tests for keys that drive the transport."""

    def test_enter_plays_file(self, player, transport):
        play_first_track(player)

        assert transport.state == TransportState.PLAYING
        assert transport.active_track.name == "a.mp3"

    def test_enter_opens_directory(self, player, temp_music_dir):
        press(player, KEY_DOWN, "\r")

        assert player.state.navigation.cwd == (temp_music_dir / "album").absolute()

    def test_enter_vanished_directory(self, player, temp_music_dir):
        (temp_music_dir / "album" / "nested.flac").unlink()
        (temp_music_dir / "album").rmdir()

        press(player, KEY_DOWN, "\r")

        assert player.state.navigation.cwd == temp_music_dir.absolute()
        assert "Not a directory" in player.state.ui.message
        assert player.state.navigation.rows == 4

    def test_enter_on_up_row(self, player, temp_music_dir):
        press(player, "\r")

        assert player.state.navigation.cwd == temp_music_dir.absolute().parent

    def test_space_toggles_pause(self, player, transport):
        play_first_track(player)

        press(player, " ")
        assert transport.state == TransportState.PAUSED

        press(player, " ")
        assert transport.state == TransportState.PLAYING

    def test_next_previous_first_last(self, player, transport):
        play_first_track(player)

        press(player, "x")
        assert transport.active_track.name == "b.mp3"

        press(player, "X")
        assert transport.active_track.name == "c.mp3"

        press(player, "z")
        assert transport.active_track.name == "b.mp3"

        press(player, "Z")
        assert transport.active_track.name == "a.mp3"

    def test_seek_keys(self, player, transport, fake_clock):
        play_first_track(player)
        fake_clock.advance(10)

        press(player, KEY_RIGHT)
        assert transport.position == pytest.approx(11)

        press(player, KEY_SRIGHT)
        assert transport.position == pytest.approx(16)

        press(player, KEY_LEFT)
        assert transport.position == pytest.approx(15)

    def test_shuffle_and_repeat_keys(self, player, transport):
        press(player, "s", "r")

        assert transport.shuffle is True
        assert transport.repeat_mode == RepeatMode.DIRECTORY

    def test_first_last_with_empty_queue(self, player, transport):
        press(player, "Z", "X")

        assert transport.state == TransportState.STOPPED

    def test_ctrl_c_quits(self, player):
        assert press(player, CTRL_C) is False


class TestVolumeKeys:
    """Tests for volume keys and the mouse wheel."""

    def test_volume_steps(self, player, transport):
        press(player, "-")
        assert transport.volume == 95

        press(player, "_")
        assert transport.volume == 94

        press(player, "+")
        assert transport.volume == 95

        press(player, "=")
        assert transport.volume == 100

    def test_volume_clamped_at_max(self, player, transport):
        press(player, "=", "=")

        assert transport.volume == 100

    def test_mouse_wheel(self, player, transport, store):
        press(player, "\x1b[<65;1;1M", "\x1b[<65;1;1M")

        assert transport.volume == 90
        assert store.settings.last_volume == 90

        press(player, "\x1b[<64;1;1M")

        assert transport.volume == 95


class TestCommandMode:
    """Tests for ':' commands."""

    def test_quit_command(self, player):
        assert press(player, ":", "q", "\r") is False

    def test_help_command(self, player):
        press(player, ":", "h", "e", "l", "p", "\r")

        assert player.state.ui.show_help is True

        press(player, ESC)

        assert player.state.ui.show_help is False

    def test_unknown_command(self, player):
        assert press(player, ":", "w", "\r") is True

        assert "Unknown command" in player.state.ui.message

    def test_backspace_and_escape(self, player):
        press(player, ":", "a", "b", "\x7f")
        assert player.state.ui.command_buffer == "a"

        press(player, ESC)
        assert player.state.ui.command_mode is False


class TestSettingsMenu:
    """Tests for the settings menu."""

    def test_escape_opens_settings(self, player):
        press(player, ESC)

        assert player.state.ui.show_settings is True
        assert len(player.settings_options()) == fmus.SETTINGS_OPTIONS

    def test_cycle_repeat_from_menu(self, player, transport):
        press(player, ESC, KEY_DOWN, "\r")

        assert transport.repeat_mode == RepeatMode.DIRECTORY

    def test_menu_wraps(self, player):
        press(player, ESC, KEY_UP)

        assert player.state.ui.settings_cursor == fmus.SETTINGS_OPTIONS - 1

    def test_quit_saves(self, player, store, transport):
        transport.set_shuffle(True)

        assert press(player, ESC, KEY_UP, "\r") is False

        assert store.settings_path.exists()
        assert SettingsStore(store.settings_path).settings.shuffle_default is True

    def test_save_and_return(self, player, store):
        press(player, ESC)
        player.state.ui.settings_cursor = 7

        press(player, "\r")

        assert player.state.ui.show_settings is False
        assert store.settings_path.exists()

    def test_edit_icon(self, player, store):
        press(player, ESC)
        player.state.ui.settings_cursor = 4
        press(player, "\r")

        assert player.state.ui.edit_field == "icon_dirup"

        press(player, "\x7f", "\x7f", "\x7f", ".", ".", "\r")

        assert store.settings.icon_dirup == ".."
        assert player.state.ui.edit_field is None

    def test_edit_start_path_rejects_missing(self, player, store):
        press(player, ESC, "\r")
        press(player, "/", "n", "o", "p", "e", "\r")

        assert store.settings.start_path == ""
        assert "No such path" in player.state.ui.message

    def test_edit_cancel(self, player, store):
        press(player, ESC)
        player.state.ui.settings_cursor = 5
        press(player, "\r", "?", ESC)

        assert store.settings.icon_nowplaying == "!-"


class TestScreen:
    """Tests for frame building."""

    def test_screen_has_requested_rows(self, player):
        lines = player.build_screen(12, 60)

        assert len(lines) == 12

    def test_browser_lists_entries(self, player):
        text = "\n".join(player.build_screen(12, 60))

        assert "/^/" in text
        assert "album/" in text
        assert "a.mp3" in text

    def test_queue_position_indicator(self, player):
        play_first_track(player)

        text = "\n".join(player.build_screen(12, 60))

        assert "[1/3]" in text
        assert "[3/3]" in text

    def test_status_line(self, player, fake_clock):
        play_first_track(player)
        fake_clock.advance(65)
        press(player, " ")

        text = "\n".join(player.build_screen(12, 80))

        assert "01:05/03:00" in text
        assert "[-|N]" in text
        assert "[pause]" in text
        assert "Vol: 100%" in text

    def test_lines_fit_width(self, player):
        play_first_track(player)

        for line in player.build_screen(12, 30):
            assert _display_width(line) <= 30

    def test_help_overlay(self, player):
        player.state.toggle_overlay("help")

        text = "\n".join(player.build_screen(30, 60))

        assert "Available Commands:" in text
        assert ":settings" in text

    def test_settings_overlay(self, player):
        player.state.toggle_overlay("settings")

        text = "\n".join(player.build_screen(20, 60))

        assert "Repeat Default: None" in text
        assert "Save & Return" in text
