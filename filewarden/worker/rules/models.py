"""
State threaded through one rule's action chain.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from filewarden.schemas.rules import ScreenshotMetadata


@dataclass(frozen=True)
class Artifact:
    """A file produced (or planned, in dry-run) by a step of the chain."""
    path: Path

    @classmethod
    def at(cls, path: Union[str, Path]) -> "Artifact":
        return cls(Path(path))

    @property
    def name(self) -> str:
        return self.path.name


@dataclass
class RuleContext:
    """
    Chain state for one file.

    `active` is what the next action reads from. It only advances on success,
    so after a failed step the chain resumes from the last file that exists.
    """
    original: Artifact
    active: Artifact
    history: List[Artifact] = field(default_factory=list)
    dry_run: bool = False
    metadata: Optional[ScreenshotMetadata] = None

    @classmethod
    def for_file(cls, path: Union[str, Path], dry_run: bool = False,
                 metadata: Optional[ScreenshotMetadata] = None) -> "RuleContext":
        start = Artifact.at(path)
        return cls(original=start, active=start, dry_run=dry_run, metadata=metadata)

    def advance(self, path: Union[str, Path]):
        new_artifact = Artifact.at(path)
        if new_artifact != self.active:
            self.history.append(self.active)
        self.active = new_artifact

    @property
    def trail(self) -> List[Path]:
        """Every path the file has occupied, oldest first"""
        return [a.path for a in self.history] + [self.active.path]
