"""
Filesystem utilities for staging and collected files.
"""
import shutil
from pathlib import Path


def ensure_directory(path: Path) -> Path:
    """
    Ensure a directory exists.

    Args:
        path: Directory to create if missing

    Returns:
        Path: The same directory
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def relocate_file(source: Path, target_dir: Path) -> Path:
    """
    Move a file into target_dir, replacing a file of the same name.

    Returns:
        Path: New location of the file
    """
    destination = ensure_directory(Path(target_dir)) / source.name
    if destination.exists():
        destination.unlink()
    shutil.move(str(source), str(destination))
    return destination


def remove_quietly(path: Path) -> None:
    """Delete a file if present; a missing file is not an error."""
    path.unlink(missing_ok=True)
