"""
Configuration: typed dataclass sections, layered from several sources.

Later layers win::

    defaults < YAML file < selected profile < CONDUIT_* env vars < CLI flags

Every scalar or list field can be set from the environment as
``CONDUIT_<SECTION>_<FIELD>``, e.g. ``CONDUIT_LLM_MODEL`` or
``CONDUIT_COMPACTION_KEEP_RECENT``.  A few shorter aliases exist for the
common ones (``CONDUIT_LLM_TIMEOUT``).
"""

from __future__ import annotations

import os
from dataclasses import MISSING, asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

DEFAULT_CONFIG_PATH = "~/.conduit/config.yaml"
ENV_PREFIX = "CONDUIT_"


@dataclass
class LLMProviderConfig:
    model: str = "gpt-4o"
    api_base: str = "https://api.openai.com/v1"
    api_key_env: str = "OPENAI_API_KEY"
    max_tokens: int = 4000
    temperature: float = 0.7
    timeout_seconds: int = 120
    max_retries: int = 2
    context_window: int = 0  # 0 = look the model up


@dataclass
class AgentConfig:
    max_iterations: int = 25
    completion_tool: str = "agent_done"


@dataclass
class CompactionConfig:
    auto_threshold: int = 10  # remaining-context percent; 0 disables
    keep_recent: int = 3


@dataclass
class ToolsConfig:
    serper_api_key_env: str = "SERPER_API_KEY"
    todoist_api_key_env: str = "TODOIST_API_KEY"
    disabled: list[str] = field(default_factory=list)


@dataclass
class MCPServerConfig:
    command: str = ""
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    cwd: str | None = None
    init_timeout: float = 30.0

    @classmethod
    def from_raw(cls, name: str, raw: Mapping[str, Any] | None) -> MCPServerConfig:
        server = _section(cls, raw)
        if not server.command:
            raise ValueError(f"MCP server {name!r} has no command")
        server.args = [str(a) for a in server.args]
        server.env = {str(k): str(v) for k, v in server.env.items()}
        return server


# Sections that map one-to-one onto a top-level YAML key.
SECTIONS: dict[str, type] = {
    "llm": LLMProviderConfig,
    "agent": AgentConfig,
    "compaction": CompactionConfig,
    "tools": ToolsConfig,
}

ENV_ALIASES = {
    "CONDUIT_LLM_TIMEOUT": "llm.timeout_seconds",
    "CONDUIT_COMPACTION_THRESHOLD": "compaction.auto_threshold",
    "CONDUIT_COMPACTION_KEEP": "compaction.keep_recent",
    "CONDUIT_TOOLS_SERPER_KEY_ENV": "tools.serper_api_key_env",
    "CONDUIT_TOOLS_TODOIST_KEY_ENV": "tools.todoist_api_key_env",
}


@dataclass
class ConduitConfig:
    llm: LLMProviderConfig = field(default_factory=LLMProviderConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    compaction: CompactionConfig = field(default_factory=CompactionConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    mcp_servers: dict[str, MCPServerConfig] = field(default_factory=dict)
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)
    overrides: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> ConduitConfig:
        """Build from parsed YAML; unknown keys are ignored."""
        sections = {name: _section(kind, raw.get(name)) for name, kind in SECTIONS.items()}
        servers = {
            name: MCPServerConfig.from_raw(name, entry)
            for name, entry in (raw.get("mcp_servers") or {}).items()
        }
        return cls(**sections, mcp_servers=servers, profiles=dict(raw.get("profiles") or {}))

    def set_override(self, dotpath: str, value: Any) -> None:
        """Set ``section.field`` and remember it, e.g. ``("llm.model", "gpt-4o-mini")``."""
        section, _, name = dotpath.partition(".")
        target = getattr(self, section, None) if section in SECTIONS else None
        if target is None or not name or not hasattr(target, name):
            raise AttributeError(f"Unknown config key: {dotpath}")
        setattr(target, name, value)
        self.overrides[dotpath] = value

    def api_key(self) -> str:
        return os.environ.get(self.llm.api_key_env, "")

    def serper_api_key(self) -> str:
        return os.environ.get(self.tools.serper_api_key_env, "")

    def todoist_api_key(self) -> str:
        return os.environ.get(self.tools.todoist_api_key_env, "")

    def to_dict(self) -> dict:
        data = asdict(self)
        del data["overrides"]
        return data


def _section(kind: type, raw: Mapping[str, Any] | None) -> Any:
    known = {f.name for f in fields(kind)}
    return kind(**{k: v for k, v in (raw or {}).items() if k in known})


def _merge(base: dict, overlay: Mapping[str, Any]) -> dict:
    out = dict(base)
    for key, value in overlay.items():
        if isinstance(out.get(key), dict) and isinstance(value, Mapping):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def _parse_env(raw: str, like: Any) -> Any:
    """Parse *raw* into the type of the field default *like*."""
    if isinstance(like, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(like, int):
        return int(raw)
    if isinstance(like, float):
        return float(raw)
    if isinstance(like, list):
        return [item.strip() for item in raw.split(",") if item.strip()]
    return raw


def _field_default(kind: type, name: str) -> Any:
    for f in fields(kind):
        if f.name == name:
            if f.default is not MISSING:
                return f.default
            return f.default_factory()
    raise AttributeError(name)


def env_variables() -> dict[str, str]:
    """Every recognised environment variable and the dotpath it sets."""
    names = {
        f"{ENV_PREFIX}{section.upper()}_{f.name.upper()}": f"{section}.{f.name}"
        for section, kind in SECTIONS.items()
        for f in fields(kind)
    }
    names.update(ENV_ALIASES)
    return names


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Typed ``dotpath -> value`` pairs for the ``CONDUIT_*`` variables that are set."""
    environ = os.environ if environ is None else environ
    out: dict[str, Any] = {}
    for var, dotpath in env_variables().items():
        if var not in environ:
            continue
        section, _, name = dotpath.partition(".")
        out[dotpath] = _parse_env(environ[var], _field_default(SECTIONS[section], name))
    return out


def read_config_file(path: str | Path | None) -> dict[str, Any]:
    """Parsed YAML from *path*, or ``{}`` when there is no such file."""
    if path is None:
        return {}
    p = Path(path).expanduser()
    if not p.is_file():
        return {}
    data = yaml.safe_load(p.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{p}: expected a mapping at the top level")
    return data


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> ConduitConfig:
    """
    Parameters
    ----------
    config_path : YAML file; a missing file means defaults only
    profile : name under ``profiles:`` to overlay on the file
    cli_overrides : ``dotpath -> value`` from command-line flags
    """
    raw = read_config_file(config_path)

    if profile:
        overlay = (raw.get("profiles") or {}).get(profile)
        if overlay is None:
            raise ValueError(f"Unknown profile: {profile}")
        raw = _merge(raw, overlay)

    cfg = ConduitConfig.from_dict(raw)
    for dotpath, value in {**env_overrides(), **(cli_overrides or {})}.items():
        cfg.set_override(dotpath, value)
    return cfg


def sample_config() -> str:
    """YAML text for ``conduit config init``."""
    data = ConduitConfig().to_dict()
    data["mcp_servers"] = {
        "filesystem": {
            "command": "npx",
            "args": ["-y", "@modelcontextprotocol/server-filesystem", "."],
            "env": {},
        }
    }
    data["profiles"] = {"mini": {"llm": {"model": "gpt-4o-mini"}}}
    return yaml.safe_dump(data, sort_keys=False)
