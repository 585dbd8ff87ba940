"""
Marvinous Configuration — loads and validates marvinous.yaml
"""

import logging
import os
import re
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

from marvinous.core.errors import ConfigError

logger = logging.getLogger("marvinous.config")


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class GeneralConfig:
    report_dir: str = "/var/log/marvinous/reports"
    state_file: str = "/var/log/marvinous/state/previous.json"
    prompt_file: str = "/etc/marvinous/system-prompt.txt"
    lock_file: str = ""  # empty = in-process guard only
    log_level: str = "INFO"
    log_file: str = ""  # empty = console only

    @property
    def report_path(self) -> Path:
        return Path(self.report_dir).expanduser()

    @property
    def state_path(self) -> Path:
        return Path(self.state_file).expanduser()


@dataclass
class OllamaConfig:
    endpoint: str = "http://localhost:11434"
    model: str = "qwen2.5:7b"
    timeout_secs: int = 120
    max_retries: int = 3
    retry_delay_secs: float = 30.0  # lets a shared GPU free VRAM between attempts


@dataclass
class CollectionConfig:
    log_since: str = "1 hour ago"
    log_priority_max: int = 5
    include_kernel: bool = True
    max_log_entries: int = 500


@dataclass
class StorageConfig:
    devices: List[str] = field(default_factory=list)  # empty = smartctl --scan


@dataclass
class SensorsConfig:
    enabled: bool = True


@dataclass
class IpmiConfig:
    enabled: bool = True
    optional: bool = True


@dataclass
class GpuConfig:
    enabled: bool = True
    optional: bool = True


@dataclass
class WebConfig:
    enabled: bool = False
    bind_address: str = "0.0.0.0"
    port: int = 9090


@dataclass
class BaselineConfig:
    """Installed hardware, used to tell empty slots from dead ones in IPMI output."""
    installed_slots: List[str] = field(default_factory=list)
    installed_fans: List[str] = field(default_factory=list)


@dataclass
class MarvinousConfig:
    general: GeneralConfig = field(default_factory=GeneralConfig)
    ollama: OllamaConfig = field(default_factory=OllamaConfig)
    collection: CollectionConfig = field(default_factory=CollectionConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    sensors: SensorsConfig = field(default_factory=SensorsConfig)
    ipmi: IpmiConfig = field(default_factory=IpmiConfig)
    gpu: GpuConfig = field(default_factory=GpuConfig)
    web: WebConfig = field(default_factory=WebConfig)
    baseline: BaselineConfig = field(default_factory=BaselineConfig)

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "MarvinousConfig":
        """Load config from YAML file, falling back to defaults."""
        if config_path is None:
            # Search order: ./marvinous.yaml, ~/.marvinous/marvinous.yaml, /etc/marvinous/marvinous.yaml
            candidates = [
                Path("marvinous.yaml"),
                Path("~/.marvinous/marvinous.yaml").expanduser(),
                Path("/etc/marvinous/marvinous.yaml"),
            ]
            for candidate in candidates:
                if candidate.exists():
                    config_path = str(candidate)
                    break

        raw: dict = {}
        if config_path and Path(config_path).exists():
            cls._check_config_permissions(config_path)
            try:
                with open(config_path) as f:
                    raw = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Failed to parse {config_path}: {e}") from e
            if not isinstance(raw, dict):
                raise ConfigError(f"{config_path}: top level must be a mapping")
        elif config_path:
            raise ConfigError(f"Config file not found: {config_path}")
        else:
            logger.info("No marvinous.yaml found, using defaults")

        config = cls._from_dict(raw)
        config._apply_env_overrides()
        config._validate()
        return config

    @classmethod
    def _from_dict(cls, data: dict) -> "MarvinousConfig":
        """Build config section by section, applying ${ENV} substitution to strings."""
        config = cls()

        if "general" in data:
            g = data["general"] or {}
            config.general = GeneralConfig(**{
                k: cls._resolve_env(g.get(k, getattr(config.general, k)))
                for k in GeneralConfig.__dataclass_fields__
            })

        if "ollama" in data:
            o = data["ollama"] or {}
            config.ollama = OllamaConfig(
                endpoint=cls._resolve_env(o.get("endpoint", config.ollama.endpoint)),
                model=cls._resolve_env(o.get("model", config.ollama.model)),
                timeout_secs=o.get("timeout_secs", config.ollama.timeout_secs),
                max_retries=o.get("max_retries", config.ollama.max_retries),
                retry_delay_secs=o.get("retry_delay_secs", config.ollama.retry_delay_secs),
            )

        if "collection" in data:
            c = data["collection"] or {}
            config.collection = CollectionConfig(
                log_since=c.get("log_since", config.collection.log_since),
                log_priority_max=c.get("log_priority_max", config.collection.log_priority_max),
                include_kernel=c.get("include_kernel", config.collection.include_kernel),
                max_log_entries=c.get("max_log_entries", config.collection.max_log_entries),
            )

        if "storage" in data:
            s = data["storage"] or {}
            config.storage = StorageConfig(devices=list(s.get("devices", [])))

        if "sensors" in data:
            s = data["sensors"] or {}
            config.sensors = SensorsConfig(enabled=s.get("enabled", config.sensors.enabled))

        if "ipmi" in data:
            i = data["ipmi"] or {}
            config.ipmi = IpmiConfig(
                enabled=i.get("enabled", config.ipmi.enabled),
                optional=i.get("optional", config.ipmi.optional),
            )

        if "gpu" in data:
            gp = data["gpu"] or {}
            config.gpu = GpuConfig(
                enabled=gp.get("enabled", config.gpu.enabled),
                optional=gp.get("optional", config.gpu.optional),
            )

        if "web" in data:
            w = data["web"] or {}
            config.web = WebConfig(
                enabled=w.get("enabled", config.web.enabled),
                bind_address=w.get("bind_address", config.web.bind_address),
                port=w.get("port", config.web.port),
            )

        if "baseline" in data:
            b = data["baseline"] or {}
            config.baseline = BaselineConfig(
                installed_slots=list(b.get("installed_slots", [])),
                installed_fans=list(b.get("installed_fans", [])),
            )

        return config

    def _apply_env_overrides(self):
        """MARVINOUS_* environment variables win over the file."""
        if os.environ.get("MARVINOUS_REPORT_DIR"):
            self.general.report_dir = os.environ["MARVINOUS_REPORT_DIR"]
        if os.environ.get("MARVINOUS_OLLAMA_ENDPOINT"):
            self.ollama.endpoint = os.environ["MARVINOUS_OLLAMA_ENDPOINT"]
        if os.environ.get("MARVINOUS_OLLAMA_MODEL"):
            self.ollama.model = os.environ["MARVINOUS_OLLAMA_MODEL"]
        if os.environ.get("MARVINOUS_LOG_LEVEL"):
            self.general.log_level = os.environ["MARVINOUS_LOG_LEVEL"]

    def _validate(self):
        """Validate config values."""
        errors = []

        if not isinstance(self.ollama.endpoint, str) or not self.ollama.endpoint.startswith(("http://", "https://")):
            errors.append(f"ollama.endpoint must be an http(s) URL, got '{self.ollama.endpoint}'")
        if not isinstance(self.ollama.model, str) or not self.ollama.model:
            errors.append("ollama.model must be a non-empty string")
        if not _is_number(self.ollama.timeout_secs) or self.ollama.timeout_secs <= 0:
            errors.append(f"ollama.timeout_secs must be a positive number, got {self.ollama.timeout_secs!r}")
        if not _is_int(self.ollama.max_retries) or self.ollama.max_retries < 1:
            errors.append(f"ollama.max_retries must be an integer >= 1, got {self.ollama.max_retries!r}")
        if not _is_number(self.ollama.retry_delay_secs) or self.ollama.retry_delay_secs < 0:
            errors.append(f"ollama.retry_delay_secs must be a non-negative number, got {self.ollama.retry_delay_secs!r}")
        if not _is_int(self.collection.log_priority_max) or not (0 <= self.collection.log_priority_max <= 7):
            errors.append(f"collection.log_priority_max must be 0-7, got {self.collection.log_priority_max!r}")
        if not _is_int(self.collection.max_log_entries) or self.collection.max_log_entries < 1:
            errors.append(f"collection.max_log_entries must be an integer >= 1, got {self.collection.max_log_entries!r}")
        if not _is_int(self.web.port) or not (1 <= self.web.port <= 65535):
            errors.append(f"web.port must be 1-65535, got {self.web.port!r}")
        if not isinstance(self.general.log_level, str) or \
                self.general.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"general.log_level must be a logging level name, got '{self.general.log_level}'")

        if errors:
            raise ConfigError("Config validation errors:\n" + "\n".join(f"  - {e}" for e in errors))

    @classmethod
    def _resolve_env(cls, value, required: bool = False):
        """Replace ${ENV_VAR} patterns with environment variable values.

        Handles both full-string (${VAR}) and inline (prefix${VAR}suffix) patterns.
        Unset variables are left as-is unless required.
        """
        if not isinstance(value, str):
            return value

        def _replace(match):
            env_key = match.group(1)
            env_val = os.environ.get(env_key)
            if env_val is None:
                if required:
                    raise ConfigError(
                        f"Required environment variable '{env_key}' is not set. "
                        f"Set it or update your marvinous.yaml."
                    )
                return match.group(0)
            return env_val

        return re.sub(r'\$\{([^}]+)\}', _replace, value)

    @classmethod
    def _check_config_permissions(cls, config_path: str):
        """Warn if config file is world-writable (it decides which binaries we run as root)."""
        try:
            mode = os.stat(config_path).st_mode
            if mode & stat.S_IWOTH:
                logger.warning(
                    f"Config file {config_path} is world-writable (mode {oct(mode)}). "
                    f"Consider: chmod 644 {config_path}"
                )
        except OSError:
            pass
