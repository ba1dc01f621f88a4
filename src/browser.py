"""
Directory listing for the file browser and the play queue.
"""
import locale
from pathlib import Path
from typing import List, NamedTuple, Set, Union

from logging_config import get_logger

logger = get_logger('browser')

# Audio file extensions, matched case-insensitively
AUDIO_EXTENSIONS: Set[str] = {
    ".mp3", ".wav", ".flac", ".ogg", ".aac", ".m4a", ".wma", ".alac", ".aiff", ".opus",
}


class Entry(NamedTuple):
    """A listed file or directory."""
    path: Path
    is_dir: bool

    @property
    def name(self) -> str:
        return self.path.name + ("/" if self.is_dir else "")


def is_audio_file(path: Union[str, Path]) -> bool:
    """Return True if *path* has a recognised audio extension."""
    return Path(path).suffix.lower() in AUDIO_EXTENSIONS


def name_sort_key(path: Path) -> str:
    """Locale-aware, case-preserving sort key for a file name."""
    return locale.strxfrm(path.name)


def list_entries(directory: Union[str, Path]) -> List[Entry]:
    """List audio files and subdirectories, directories first then by name.

    Args:
        directory: Directory to list

    Returns:
        Sorted entries, or an empty list if the directory cannot be read
    """
    directory = Path(directory)
    entries: List[Entry] = []
    try:
        for child in directory.iterdir():
            try:
                is_dir = child.is_dir()
            except OSError:
                continue
            if is_dir:
                entries.append(Entry(child, True))
            elif is_audio_file(child):
                entries.append(Entry(child, False))
    except OSError as e:
        logger.warning(f"Cannot list {directory}: {e}")
        return []

    entries.sort(key=lambda e: (not e.is_dir, name_sort_key(e.path)))
    return entries


def list_tracks(directory: Union[str, Path]) -> List[Path]:
    """List the audio files of a directory, sorted by name."""
    return [e.path for e in list_entries(directory) if not e.is_dir]
