"""
Destination resolution for rule actions.

Turns an action's destination/pattern templates into a concrete, collision-free
path. Templates are re-expanded on every call, so date tokens reflect the
moment the action runs.
"""
import os
import re
import logging
from datetime import datetime
from pathlib import Path
from typing import Mapping, Optional, Union

from filewarden.schemas.rules import Action, ScreenshotMetadata
from .template import expand_destination, expand_pattern

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"\{[^{}]+\}")


def names_file(destination: str) -> bool:
    """
    True when an un-patterned destination is itself a file name.

    Only a single path segment carrying an extension counts; multi-segment
    destinations such as "{app}/{domain}" expand to directories even when the
    last segment (e.g. "site.example.com") looks like it has an extension.
    An absolute "/report.pdf" has two segments.
    """
    parts = destination.split(os.sep)
    return len(parts) == 1 and bool(Path(destination).suffix)


def ends_in_placeholder(template: str) -> bool:
    """True when the last segment of a destination template contains a {placeholder}"""
    last = template.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]
    return PLACEHOLDER.search(last) is not None


def apply_pattern(
    destination: str,
    pattern: str,
    source_path: Union[str, Path],
    now: Optional[datetime] = None,
) -> Path:
    """Replace the file name under the destination directory with the expanded pattern"""
    src = Path(source_path)
    ext = src.suffix

    dest_dir = os.path.dirname(destination) if names_file(destination) else destination

    name = expand_pattern(pattern, src, now)
    if not name.endswith(ext):
        name = name + ext

    return Path(dest_dir) / name


def resolve_collision(path: Union[str, Path], dry_run: bool = False) -> Path:
    """
    Return the path, or the first free "<stem>-N<ext>" sibling if it is taken.

    Probes the filesystem sequentially; two processes racing on the same
    destination can both see a candidate as free.
    """
    path = Path(path)
    if dry_run or not path.exists():
        return path

    counter = 1
    while True:
        candidate = path.with_name(f"{path.stem}-{counter}{path.suffix}")
        if not candidate.exists():
            logger.debug(f"Collision at {path}, using {candidate}")
            return candidate
        counter += 1


def resolve_destination(
    action: Action,
    source_path: Union[str, Path],
    path_vars: Mapping[str, str],
    metadata: Optional[ScreenshotMetadata] = None,
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> Path:
    """
    Build the final destination path for one action.

    Raises:
        OSError: if the destination directory cannot be created
    """
    src = Path(source_path)
    config = action.config

    destination = expand_destination(config.destination, src, path_vars, metadata)

    if config.pattern:
        target = apply_pattern(destination, config.pattern, src, now)
    elif Path(destination).suffix and not ends_in_placeholder(config.destination):
        target = Path(destination)
    else:
        # an expanded value such as app "zoom.us" names a folder, not a file
        target = Path(destination) / src.name

    if config.create_dirs and not dry_run:
        target.parent.mkdir(parents=True, exist_ok=True)

    return resolve_collision(target, dry_run)
