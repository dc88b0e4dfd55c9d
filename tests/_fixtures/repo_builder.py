"""Helper utilities for constructing throwaway repositories in tests."""

from __future__ import annotations

import shutil
import subprocess
import textwrap
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

DEPLOYMENT = """
apiVersion: apps/v1
kind: Deployment
metadata:
  name: web
"""

SERVICE = """
apiVersion: v1
kind: Service
metadata:
  name: my-svc
"""


class RepoBuilder:
    """Writes files into a fake remote repository that a fake ``git clone`` copies."""

    def __init__(self, tmp_path: Path) -> None:
        self.root = tmp_path / "remote"
        self.root.mkdir()
        (self.root / ".git").mkdir()
        (self.root / ".git" / "config.yaml").write_text(
            "apiVersion: v1\nkind: ConfigMap\n", encoding="utf-8"
        )

    def write(self, files: Mapping[str, str]) -> None:
        """Write `path -> contents` entries into the repository."""
        for relative, content in files.items():
            path = self.root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            normalised = textwrap.dedent(content).lstrip("\n")
            path.write_text(normalised, encoding="utf-8")

    def path(self) -> Path:
        """Return the repository root path."""
        return self.root


class FakeGit:
    """Stands in for the git executable: ``clone`` copies a RepoBuilder tree."""

    def __init__(self, source: Optional[Path] = None, *, stderr: str = "") -> None:
        self.source = source
        self.stderr = stderr
        self.calls: List[List[str]] = []

    def __call__(self, args: Sequence[str], *, cwd: Path, timeout: Optional[float] = None) -> str:
        command = list(args)
        self.calls.append(command)
        if self.source is None:
            raise subprocess.CalledProcessError(128, command, output="", stderr=self.stderr)
        shutil.copytree(self.source, command[-1])
        return ""


class FakeKubectl:
    """Stands in for kubectl, answering from a callable keyed on the command."""

    def __init__(self, respond: Callable[[List[str]], Tuple[int, str]]) -> None:
        self.respond = respond
        self.calls: List[List[str]] = []
        self.manifests: Dict[str, str] = {}

    def __call__(self, command: Sequence[str], *, timeout: Optional[float] = None) -> Tuple[int, str]:
        command = list(command)
        self.calls.append(command)
        if "-f" in command:
            manifest = Path(command[command.index("-f") + 1])
            self.manifests[str(manifest)] = manifest.read_text(encoding="utf-8")
        return self.respond(command)


__all__ = ["DEPLOYMENT", "FakeGit", "FakeKubectl", "RepoBuilder", "SERVICE"]
