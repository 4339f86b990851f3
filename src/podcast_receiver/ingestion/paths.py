"""
Destination path helpers for downloaded episodes.

Channel titles and enclosure URLs are turned into file-system safe names,
and clashes with files already on disk are resolved with a numeric suffix.
"""

import re
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

DEFAULT_EXTENSION = "mp3"

# Characters that are unsafe in a file name on at least one common platform
_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def file_system_safe(name: str) -> str:
    """
    Replace characters that are not allowed in file names with ``-``.

    Example:
        >>> file_system_safe('AC/DC: "Live"')
        'AC-DC- -Live-'
    """
    safe = _UNSAFE_CHARS.sub("-", name).strip()
    # "." and ".." would address the parent folder
    if safe.strip(".") == "":
        safe = safe.replace(".", "-")
    return safe


def url_file_name(url: Optional[str]) -> Optional[str]:
    """
    Return the last path segment of a URL, or None if there is none.

    Example:
        >>> url_file_name("https://cdn.example.com/shows/ep%2012.mp3?id=3")
        'ep 12.mp3'
    """
    if not url:
        return None
    path = unquote(urlparse(url).path)
    name = path.rstrip("/").rsplit("/", 1)[-1].strip()
    return name or None


def channel_directory(storage_folder: Path, channel_title: Optional[str], fallback: str) -> Path:
    """Directory holding a channel's episodes, named after its title."""
    name = file_system_safe(channel_title or "") or file_system_safe(fallback)
    return Path(storage_folder) / name


def unique_episode_path(directory: Path, enclosure_url: str, title: Optional[str]) -> Path:
    """
    Pick a file name for an episode inside ``directory``.

    The name comes from the enclosure URL, falling back to the episode
    title; ``mp3`` is used when there is no extension. If the name is
    taken, ``0``, ``1``, ... is appended to the stem until it is free.

    Args:
        directory: Channel directory
        enclosure_url: Enclosure URL of the episode
        title: Episode title, used when the URL has no file name

    Returns:
        Path that did not exist at the time of the call
    """
    name = url_file_name(enclosure_url) or title or "episode"
    name = file_system_safe(name) or "episode"

    stem, dot, extension = name.rpartition(".")
    if not dot or not stem:
        stem, extension = name, ""
    if not extension.strip():
        extension = DEFAULT_EXTENSION

    candidate = directory / f"{stem}.{extension}"
    counter = 0
    while candidate.exists():
        candidate = directory / f"{stem}{counter}.{extension}"
        counter += 1
    return candidate
