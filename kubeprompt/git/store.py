"""Shallow repository checkouts and manifest discovery."""

from __future__ import annotations

import os
import re
import secrets
import shutil
import subprocess
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Sequence

from ..errors import NotFoundError, RetrievalError
from ..logging import get_logger
from ..manifests import ManifestClassifier, is_manifest_filename
from ..models import Artifact, Workspace

_VCS_DIRS = {".git", ".hg", ".svn"}

_HOST_PATTERNS = (
    re.compile(r"github\.com[/:]([^/]+)/([^/]+?)(?:\.git)?/?$"),
    re.compile(r"gitlab\.com[/:]([^/]+)/([^/]+?)(?:\.git)?/?$"),
    re.compile(r"bitbucket\.org[/:]([^/]+)/([^/]+?)(?:\.git)?/?$"),
)
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")

DEFAULT_ROOT_NAME = "kubeprompt-repos"


def repo_name(url: str) -> str:
    """Return an ``owner-repo`` hint for a repository URL, or an empty string."""
    for pattern in _HOST_PATTERNS:
        match = pattern.search(url)
        if match:
            return _UNSAFE_CHARS.sub("-", f"{match.group(1)}-{match.group(2)}")
    stripped = url.rstrip("/")
    if "/" not in stripped:
        return ""
    last = stripped.rsplit("/", 1)[-1]
    if last.endswith(".git"):
        last = last[: -len(".git")]
    return _UNSAFE_CHARS.sub("-", last)


class ArtifactStore:
    """Clones repository snapshots into disposable workspaces and reads manifests."""

    def __init__(
        self,
        *,
        root: Path | str | None = None,
        classifier: ManifestClassifier | None = None,
        executable: str = "git",
        default_branches: Sequence[str] = ("main", "master"),
        clone_timeout: Optional[float] = None,
        runner: Callable[..., str] | None = None,
    ) -> None:
        self.root = Path(root) if root is not None else Path(tempfile.gettempdir()) / DEFAULT_ROOT_NAME
        self.classifier = classifier or ManifestClassifier()
        self.executable = executable
        self.default_branches = tuple(default_branches)
        self.clone_timeout = clone_timeout
        self._runner = runner or self._default_runner
        self.logger = get_logger("git.store")

    # ------------------------------------------------------------------
    # Retrieval

    def fetch(self, url: str, branch: str | None = None) -> Workspace:
        """Shallow-clone ``url`` at ``branch`` into a fresh workspace."""
        hint = repo_name(url)
        if not hint:
            raise RetrievalError(f"Invalid repository URL: {url}")

        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise RetrievalError(f"Unable to prepare workspace root {self.root}: {exc}") from exc

        name = f"{hint}_{int(time.time())}_{secrets.token_hex(3)}"
        target = self.root / name
        effective_branch = branch or self.default_branches[0]

        args = [self.executable, "clone", "--depth", "1", "--single-branch"]
        # Primary branch names follow the remote HEAD so master-only repos still clone.
        if branch and branch not in self.default_branches:
            args.extend(["--branch", branch])
        args.extend([url, str(target)])

        self.logger.info("Cloning %s (branch: %s)", url, effective_branch)
        try:
            self._runner(args, cwd=self.root, timeout=self.clone_timeout)
        except subprocess.CalledProcessError as exc:
            self._discard(target)
            detail = _process_text(exc.stderr) or _process_text(exc.output) or str(exc.returncode)
            raise RetrievalError(f"git clone failed: {detail}") from exc
        except subprocess.TimeoutExpired as exc:
            self._discard(target)
            raise RetrievalError(f"git clone timed out after {exc.timeout}s") from exc
        except OSError as exc:
            self._discard(target)
            raise RetrievalError(f"Unable to run '{self.executable}': {exc}") from exc

        if not target.is_dir():
            raise RetrievalError(f"git clone produced no checkout at {target}")

        self.logger.info("Clone ready at %s", target)
        return Workspace(name=name, path=target, repo_url=url, branch=effective_branch)

    @contextmanager
    def workspace(self, url: str, branch: str | None = None) -> Iterator[Workspace]:
        """Yield a fetched workspace and release it on every exit path."""
        workspace = self.fetch(url, branch)
        try:
            yield workspace
        finally:
            self.release(workspace)

    # ------------------------------------------------------------------
    # Discovery

    def discover(self, workspace: Workspace, *, include_all: bool = False) -> List[Artifact]:
        """Return the manifests in ``workspace`` in walk order.

        With ``include_all`` every YAML file is returned with its classification.
        """
        artifacts: List[Artifact] = []
        for path in _iter_files(workspace.path):
            if not is_manifest_filename(path.name):
                continue
            artifact = self._read(workspace, path)
            if artifact is None:
                continue
            if artifact.is_manifest or include_all:
                artifacts.append(artifact)
        self.logger.info("Discovered %d manifest(s) in %s", len(artifacts), workspace.name)
        return artifacts

    def locate(self, workspace: Workspace, filename: str) -> Artifact:
        """Return the first file whose name matches ``filename`` case-insensitively."""
        wanted = filename.strip().casefold()
        for path in _iter_files(workspace.path):
            if path.name.casefold() != wanted:
                continue
            try:
                content = path.read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                raise RetrievalError(f"Unable to read {path.name}: {exc}") from exc
            self.logger.info("Located %s", path.relative_to(workspace.path).as_posix())
            return self._build(workspace, path, content)
        raise NotFoundError(f"File not found in repository: {filename}")

    # ------------------------------------------------------------------
    # Cleanup

    def release(self, workspace: Workspace | Path | str) -> None:
        """Delete a workspace tree. Missing trees and errors are logged only."""
        path = workspace.path if isinstance(workspace, Workspace) else Path(workspace)
        if not path.exists():
            return
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            return
        except OSError as exc:
            self.logger.warning("Failed to remove workspace %s: %s", path, exc)
            return
        self.logger.info("Removed workspace %s", path)

    def purge_all(self) -> bool:
        """Remove the whole workspace root. Returns False when nothing existed."""
        if not self.root.exists():
            return False
        try:
            shutil.rmtree(self.root)
        except FileNotFoundError:
            return False
        except OSError as exc:
            self.logger.warning("Failed to purge workspace root %s: %s", self.root, exc)
            return False
        self.logger.info("Purged workspace root %s", self.root)
        return True

    # ------------------------------------------------------------------
    # Helpers

    def _read(self, workspace: Workspace, path: Path) -> Artifact | None:
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            self.logger.warning("Skipping unreadable file %s: %s", path, exc)
            return None
        return self._build(workspace, path, content)

    def _build(self, workspace: Workspace, path: Path, content: str) -> Artifact:
        return Artifact(
            path=path.relative_to(workspace.path).as_posix(),
            absolute_path=path,
            content=content,
            size=len(content.encode("utf-8")),
            is_manifest=self.classifier.is_candidate(content),
        )

    def _discard(self, target: Path) -> None:
        if target.exists():
            shutil.rmtree(target, ignore_errors=True)

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path,
        timeout: Optional[float] = None,
    ) -> str:
        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            check=True,
            text=True,
            capture_output=True,
            timeout=timeout,
        )
        return completed.stdout


def _iter_files(root: Path) -> Iterator[Path]:
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(name for name in dirnames if name not in _VCS_DIRS)
        current = Path(dirpath)
        for filename in sorted(filenames):
            yield current / filename


def _process_text(value: object) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace").strip()
    if isinstance(value, str):
        return value.strip()
    return ""


__all__ = ["ArtifactStore", "DEFAULT_ROOT_NAME", "repo_name"]
