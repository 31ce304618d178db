"""
Configuration loader for IntelliCode.

The config is built once at process start and passed into every component
constructor. Values come from a YAML file (default
.intellicode/code-intelligence.yaml) with API keys overridable from the
environment. All sections are frozen dataclasses.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from .errors import ConfigError
from .mcp_logger import log_info, log_warn

DEFAULT_CONFIG_PATH = Path(".intellicode") / "code-intelligence.yaml"

MEMORY_CATEGORIES = ("core", "dynamic", "planning", "technical", "auto_generated")

LLM_ENV_KEYS = {
    "openai": "OPENAI_API_KEY",
    "google": "GOOGLE_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


@dataclass(frozen=True)
class ArchiveConfig:
    path: str = "archive"
    retention_period: str = "30d"


@dataclass(frozen=True)
class MemoryConfig:
    enabled: bool = True
    root_dir: str = str(Path(".intellicode") / "memory")
    archive: ArchiveConfig = field(default_factory=ArchiveConfig)
    files: Dict[str, Tuple[str, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class PriorityConfig:
    P0: Tuple[str, ...] = ("CODE", "Handover Decisions", "Project Plan Changes")
    P1: Tuple[str, ...] = ("Memory Bank Updates", "Critical Conflicts")
    P2: Tuple[str, ...] = ()
    default_compression_rate: float = 0.5


@dataclass(frozen=True)
class SerpApiConfig:
    api_key: str = ""
    rate_limit: int = 100
    cache_duration: str = "1h"
    cache_dir: str = str(Path(".intellicode") / "cache" / "serpapi")


@dataclass(frozen=True)
class ESLintConfig:
    command: Tuple[str, ...] = ("npx", "eslint")
    config_path: str = ".eslintrc.json"
    auto_fix: bool = False
    severity_threshold: str = "warn"


@dataclass(frozen=True)
class TypeScriptConfig:
    command: Tuple[str, ...] = ("npx", "tsc")
    tsconfig_path: str = "tsconfig.json"
    check_on_save: bool = True
    diagnostic_level: str = "message"


@dataclass(frozen=True)
class SequentialThinkingConfig:
    enabled: bool = True
    max_depth: int = 5
    think_delay_seconds: float = 0.0


@dataclass(frozen=True)
class IntegrationsConfig:
    serpapi: SerpApiConfig = field(default_factory=SerpApiConfig)
    eslint: ESLintConfig = field(default_factory=ESLintConfig)
    typescript: TypeScriptConfig = field(default_factory=TypeScriptConfig)
    sequential_thinking: SequentialThinkingConfig = field(default_factory=SequentialThinkingConfig)


@dataclass(frozen=True)
class LLMProviderConfig:
    api_key: str = ""
    base_url: Optional[str] = None
    model: Optional[str] = None


@dataclass(frozen=True)
class LLMConfig:
    preferred_llm: Optional[str] = None  # openai, google, deepseek, anthropic
    providers: Dict[str, LLMProviderConfig] = field(default_factory=dict)


@dataclass(frozen=True)
class AnalysisConfig:
    diagnostics_tool: str = "typescript_diagnostics"
    max_change_lines: int = 200
    think_delay_seconds: float = 0.0


@dataclass(frozen=True)
class RouterConfig:
    max_call_depth: int = 16


@dataclass(frozen=True)
class SchedulerConfig:
    enabled: bool = True
    check_interval_seconds: float = 300.0
    jitter_seconds: float = 60.0
    memory_map_target: str = "src/index.ts"


@dataclass(frozen=True)
class WatcherConfig:
    enabled: bool = True
    root: str = "src"
    patterns: Tuple[str, ...] = ("*.ts", "*.md")
    poll_interval_seconds: float = 2.0


@dataclass(frozen=True)
class LoggingConfig:
    log_dir: Optional[str] = None
    level: str = "INFO"


@dataclass(frozen=True)
class Config:
    version: str = "2.1"
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    priorities: PriorityConfig = field(default_factory=PriorityConfig)
    integrations: IntegrationsConfig = field(default_factory=IntegrationsConfig)
    llm_apis: LLMConfig = field(default_factory=LLMConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    router: RouterConfig = field(default_factory=RouterConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    watcher: WatcherConfig = field(default_factory=WatcherConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def with_memory_root(self, root_dir: str) -> "Config":
        """Copy of this config pointing the memory bank at another directory."""
        return replace(self, memory=replace(self.memory, root_dir=str(root_dir)))


# === Parsing ===

def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{key}' must be a mapping, got {type(value).__name__}")
    return value


def _str_tuple(value: Any, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if value is None:
        return default
    if isinstance(value, str):
        return tuple(value.split())
    return tuple(str(v) for v in value)


def _parse_memory(data: Dict[str, Any]) -> MemoryConfig:
    archive = _section(data, "archive")
    files = {
        category: tuple(names or [])
        for category, names in _section(data, "files").items()
    }
    defaults = MemoryConfig()
    return MemoryConfig(
        enabled=bool(data.get("enabled", True)),
        root_dir=str(data.get("root_dir", defaults.root_dir)),
        archive=ArchiveConfig(
            path=str(archive.get("path", "archive")).strip("/") or "archive",
            retention_period=str(archive.get("retention_period", "30d")),
        ),
        files=files,
    )


def _parse_priorities(data: Dict[str, Any]) -> PriorityConfig:
    defaults = PriorityConfig()
    rate = float(data.get("default_compression_rate", defaults.default_compression_rate))
    if not 0.0 <= rate <= 1.0:
        raise ConfigError(f"default_compression_rate must be between 0 and 1, got {rate}")
    return PriorityConfig(
        P0=_str_tuple(data.get("P0"), defaults.P0),
        P1=_str_tuple(data.get("P1"), defaults.P1),
        P2=_str_tuple(data.get("P2"), defaults.P2),
        default_compression_rate=rate,
    )


def _parse_integrations(data: Dict[str, Any]) -> IntegrationsConfig:
    serp = _section(data, "serpapi")
    eslint = _section(data, "eslint")
    ts = _section(data, "typescript")
    thinking = _section(data, "sequential_thinking")
    d_serp, d_eslint, d_ts, d_think = SerpApiConfig(), ESLintConfig(), TypeScriptConfig(), SequentialThinkingConfig()
    return IntegrationsConfig(
        serpapi=SerpApiConfig(
            api_key=str(serp.get("api_key") or ""),
            rate_limit=int(serp.get("rate_limit", d_serp.rate_limit)),
            cache_duration=str(serp.get("cache_duration", d_serp.cache_duration)),
            cache_dir=str(serp.get("cache_dir", d_serp.cache_dir)),
        ),
        eslint=ESLintConfig(
            command=_str_tuple(eslint.get("command"), d_eslint.command),
            config_path=str(eslint.get("config_path", d_eslint.config_path)),
            auto_fix=bool(eslint.get("auto_fix", d_eslint.auto_fix)),
            severity_threshold=str(eslint.get("severity_threshold", d_eslint.severity_threshold)),
        ),
        typescript=TypeScriptConfig(
            command=_str_tuple(ts.get("command"), d_ts.command),
            tsconfig_path=str(ts.get("tsconfig_path", d_ts.tsconfig_path)),
            check_on_save=bool(ts.get("check_on_save", d_ts.check_on_save)),
            diagnostic_level=str(ts.get("diagnostic_level", d_ts.diagnostic_level)),
        ),
        sequential_thinking=SequentialThinkingConfig(
            enabled=bool(thinking.get("enabled", d_think.enabled)),
            max_depth=int(thinking.get("max_depth", d_think.max_depth)),
            think_delay_seconds=float(thinking.get("think_delay_seconds", d_think.think_delay_seconds)),
        ),
    )


def _parse_llm(data: Dict[str, Any]) -> LLMConfig:
    providers: Dict[str, LLMProviderConfig] = {}
    for name in LLM_ENV_KEYS:
        raw = data.get(name)
        if raw is None:
            continue
        if not isinstance(raw, dict):
            raise ConfigError(f"llm_apis.{name} must be a mapping")
        providers[name] = LLMProviderConfig(
            api_key=str(raw.get("api_key") or ""),
            base_url=raw.get("base_url"),
            model=raw.get("model"),
        )
    preferred = data.get("preferred_llm")
    if preferred is not None and preferred not in LLM_ENV_KEYS:
        raise ConfigError(f"Unknown preferred_llm: {preferred}")
    return LLMConfig(preferred_llm=preferred, providers=providers)


def parse_config(data: Optional[Dict[str, Any]]) -> Config:
    """Build a Config from an already-parsed YAML mapping."""
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")

    analysis = _section(data, "analysis")
    router = _section(data, "router")
    scheduler = _section(data, "scheduler")
    watcher = _section(data, "watcher")
    logging_section = _section(data, "logging")
    d_analysis, d_scheduler, d_watcher = AnalysisConfig(), SchedulerConfig(), WatcherConfig()

    return Config(
        version=str(data.get("version", Config.version)),
        memory=_parse_memory(_section(data, "memory")),
        priorities=_parse_priorities(_section(data, "priorities")),
        integrations=_parse_integrations(_section(data, "integrations")),
        llm_apis=_parse_llm(_section(data, "llm_apis")),
        analysis=AnalysisConfig(
            diagnostics_tool=str(analysis.get("diagnostics_tool", d_analysis.diagnostics_tool)),
            max_change_lines=int(analysis.get("max_change_lines", d_analysis.max_change_lines)),
            think_delay_seconds=float(analysis.get("think_delay_seconds", d_analysis.think_delay_seconds)),
        ),
        router=RouterConfig(max_call_depth=int(router.get("max_call_depth", RouterConfig.max_call_depth))),
        scheduler=SchedulerConfig(
            enabled=bool(scheduler.get("enabled", d_scheduler.enabled)),
            check_interval_seconds=float(scheduler.get("check_interval_seconds", d_scheduler.check_interval_seconds)),
            jitter_seconds=float(scheduler.get("jitter_seconds", d_scheduler.jitter_seconds)),
            memory_map_target=str(scheduler.get("memory_map_target", d_scheduler.memory_map_target)),
        ),
        watcher=WatcherConfig(
            enabled=bool(watcher.get("enabled", d_watcher.enabled)),
            root=str(watcher.get("root", d_watcher.root)),
            patterns=_str_tuple(watcher.get("patterns"), d_watcher.patterns),
            poll_interval_seconds=float(watcher.get("poll_interval_seconds", d_watcher.poll_interval_seconds)),
        ),
        logging=LoggingConfig(
            log_dir=logging_section.get("log_dir"),
            level=str(logging_section.get("level", "INFO")),
        ),
    )


def apply_env_overrides(config: Config, environ: Optional[Dict[str, str]] = None) -> Config:
    """Return a copy of config with API keys and paths taken from the environment."""
    env = os.environ if environ is None else environ

    serp_key = env.get("SERP_API_KEY")
    if serp_key:
        serpapi = replace(config.integrations.serpapi, api_key=serp_key)
        config = replace(config, integrations=replace(config.integrations, serpapi=serpapi))
        log_info("SERP_API_KEY loaded from environment variables")
    else:
        log_warn("SERP_API_KEY not found in environment, using config file value")

    providers = dict(config.llm_apis.providers)
    for name, env_key in LLM_ENV_KEYS.items():
        value = env.get(env_key)
        if value:
            providers[name] = replace(providers.get(name, LLMProviderConfig()), api_key=value)
            log_info(f"{env_key} loaded from environment variables")
    config = replace(config, llm_apis=replace(config.llm_apis, providers=providers))

    memory_dir = env.get("INTELLICODE_MEMORY_DIR")
    if memory_dir:
        config = config.with_memory_root(memory_dir)
    return config


def load_config(path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> Config:
    """
    Load configuration from YAML plus environment overrides.

    A missing file yields the defaults; a malformed one raises ConfigError.
    """
    env = os.environ if environ is None else environ
    config_path = Path(path or env.get("INTELLICODE_CONFIG") or DEFAULT_CONFIG_PATH)

    data: Dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Configuration loading failed: {config_path}: {e}") from e
        log_info(f"Configuration loaded from {config_path}")
    else:
        log_warn(f"Config file {config_path} not found, using defaults")

    return apply_env_overrides(parse_config(data), env)
