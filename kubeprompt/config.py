"""Configuration loading for kubeprompt (.kubeprompt.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .git.store import ArtifactStore
from .intent.parser import IntentParser
from .kube.executor import MutationExecutor
from .llm.runner import LLMRunner
from .manifests import ManifestClassifier
from .orchestrator import PipelineCoordinator

CONFIG_FILENAME = ".kubeprompt.yml"


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class LLMConfig:
    """Text-generation backend settings."""

    model: Optional[str] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    request_timeout: Optional[float] = None
    enabled: bool = True


@dataclass
class GitConfig:
    """Repository retrieval settings."""

    executable: str = "git"
    default_branch: str = "main"
    workspace_root: Optional[Path] = None
    clone_timeout: Optional[float] = None


@dataclass
class KubectlConfig:
    """kubectl invocation settings."""

    executable: str = "kubectl"
    context: Optional[str] = None
    timeout: Optional[float] = None
    context_timeout: float = 3.0
    extra_kinds: List[str] = field(default_factory=list)


@dataclass
class KubePromptConfig:
    """Represents the settings defined in .kubeprompt.yml."""

    root: Path
    llm: LLMConfig = field(default_factory=LLMConfig)
    git: GitConfig = field(default_factory=GitConfig)
    kubectl: KubectlConfig = field(default_factory=KubectlConfig)


def load_config(config_path: Path | str | None = None) -> KubePromptConfig:
    """Load configuration from disk, returning defaults when the file is missing."""
    config_file = _resolve_config_path(Path(config_path) if config_path else Path.cwd())
    root = config_file.parent.resolve()

    if not config_file.exists():
        return KubePromptConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    llm_data = _as_dict(data.get("llm"))
    llm = LLMConfig(
        model=_as_str(llm_data.get("model")),
        base_url=_as_str(llm_data.get("base_url")),
        api_key=_as_str(llm_data.get("api_key")),
        temperature=_as_float(llm_data.get("temperature")),
        max_tokens=_as_int(llm_data.get("max_tokens")),
        request_timeout=_as_float(llm_data.get("request_timeout")),
        enabled=_as_bool(llm_data.get("enabled"), default=True),
    )

    git_data = _as_dict(data.get("git"))
    workspace_root = _as_str(git_data.get("workspace_root"))
    git = GitConfig(
        executable=_as_str(git_data.get("executable")) or "git",
        default_branch=_as_str(git_data.get("default_branch")) or "main",
        workspace_root=_resolve_root(root, workspace_root) if workspace_root else None,
        clone_timeout=_as_float(git_data.get("clone_timeout")),
    )

    kubectl_data = _as_dict(data.get("kubectl"))
    context_timeout = _as_float(kubectl_data.get("context_timeout"))
    kubectl = KubectlConfig(
        executable=_as_str(kubectl_data.get("executable")) or "kubectl",
        context=_as_str(kubectl_data.get("context")),
        timeout=_as_float(kubectl_data.get("timeout")),
        context_timeout=context_timeout if context_timeout is not None else 3.0,
        extra_kinds=_as_str_list(kubectl_data.get("extra_kinds")),
    )

    return KubePromptConfig(root=root, llm=llm, git=git, kubectl=kubectl)


def build_llm_runner(config: KubePromptConfig) -> LLMRunner | None:
    """Create the backend client described by ``config``, or None when disabled."""
    llm = config.llm
    if not llm.enabled:
        return None
    kwargs: Dict[str, Any] = {}
    if llm.base_url:
        kwargs["base_url"] = llm.base_url
    if llm.api_key:
        kwargs["api_key"] = llm.api_key
    if llm.temperature is not None:
        kwargs["temperature"] = llm.temperature
    if llm.max_tokens is not None:
        kwargs["max_tokens"] = llm.max_tokens
    if llm.request_timeout is not None:
        kwargs["request_timeout"] = llm.request_timeout
    return LLMRunner(llm.model, **kwargs)


def build_coordinator(config: KubePromptConfig | None = None) -> PipelineCoordinator:
    """Wire a coordinator from configuration."""
    config = config or load_config()
    runner = build_llm_runner(config)
    store = ArtifactStore(
        root=config.git.workspace_root,
        classifier=ManifestClassifier(config.kubectl.extra_kinds),
        executable=config.git.executable,
        default_branches=_default_branches(config.git.default_branch),
        clone_timeout=config.git.clone_timeout,
    )
    executor = MutationExecutor(
        executable=config.kubectl.executable,
        context=config.kubectl.context,
        timeout=config.kubectl.timeout,
    )
    parser = IntentParser(runner, default_branch=config.git.default_branch)
    return PipelineCoordinator(
        store=store,
        executor=executor,
        parser=parser,
        llm_runner=runner,
        context_timeout=config.kubectl.context_timeout,
    )


def _default_branches(primary: str) -> tuple[str, ...]:
    branches = [primary]
    for name in ("main", "master"):
        if name not in branches:
            branches.append(name)
    return tuple(branches)


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _resolve_root(base: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else (base / path).resolve()


def _read_config(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded if loaded is not None else {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    return str(value) if isinstance(value, (str, int, float)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any, *, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return default


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "GitConfig",
    "KubePromptConfig",
    "KubectlConfig",
    "LLMConfig",
    "build_coordinator",
    "build_llm_runner",
    "load_config",
]
