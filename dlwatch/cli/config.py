"""Configuration system for the dlwatch CLI.

Configuration sources, highest precedence first:
CLI flags > environment variables > config file > auto-discovered file > defaults
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from ..capture.browser_factory import DEFAULT_LAUNCH_ARGS, BrowserConfig, BrowserEngineType
from ..datalayer.session import DEFAULT_URL, DEFAULT_WAIT_SECONDS, ObservationConfig


class CaptureConfig(BaseModel):
    """What to observe and for how long."""
    url: str = Field(default=DEFAULT_URL, description="Page to observe")
    wait_seconds: float = Field(default=DEFAULT_WAIT_SECONDS, ge=0, description="Observation window")
    poll_interval: float = Field(default=1.0, gt=0, le=60.0, description="Seconds between log buffer polls")
    call_timeout_seconds: float = Field(default=5.0, gt=0, le=60.0, description="Bound for a single browser call")
    navigation_timeout_seconds: float = Field(default=30.0, ge=1.0, le=300.0, description="Page load timeout")
    wait_until: str = Field(default="load", description="Load state navigation waits for")
    inject: bool = Field(default=True, description="Install the dataLayer push monitor")
    console_api: bool = Field(default=True, description="Subscribe to DevTools console API events")
    queue_name: str = Field(default="dataLayer", description="Page-global queue to monitor")
    max_depth: int = Field(default=10, ge=1, le=100, description="Nesting depth kept when copying pushed values")
    extra_keywords: List[str] = Field(default_factory=list, description="Additional console keywords")

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        if not v.startswith(('http://', 'https://', 'file://', 'about:')):
            raise ValueError("url must start with http://, https://, file:// or about:")
        return v

    @field_validator('wait_until')
    @classmethod
    def validate_wait_until(cls, v):
        if v not in ['load', 'domcontentloaded', 'networkidle', 'commit']:
            raise ValueError("wait_until must be one of: load, domcontentloaded, networkidle, commit")
        return v

    @field_validator('queue_name')
    @classmethod
    def validate_queue_name(cls, v):
        if not v.isidentifier():
            raise ValueError("queue_name must be a valid JavaScript identifier")
        return v


class BrowserSettings(BaseModel):
    """Browser launch options."""
    engine: str = Field(default=BrowserEngineType.CHROMIUM, description="Browser engine")
    headful: bool = Field(default=False, description="Run browser with GUI")
    devtools: bool = Field(default=False, description="Open browser developer tools")
    launch_args: List[str] = Field(default_factory=lambda: list(DEFAULT_LAUNCH_ARGS), description="Startup flags")
    user_agent: Optional[str] = Field(default=None, description="Custom User-Agent")
    performance_log: bool = Field(default=True, description="Capture the network performance log")

    @field_validator('engine')
    @classmethod
    def validate_engine(cls, v):
        v = v.lower()
        if v not in [BrowserEngineType.CHROMIUM, BrowserEngineType.FIREFOX, BrowserEngineType.WEBKIT]:
            raise ValueError("engine must be one of: chromium, firefox, webkit")
        return v


class OutputSettings(BaseModel):
    """Output options."""
    output_file: Optional[Path] = Field(default=None, description="Write captured events as JSON")
    indent: int = Field(default=2, ge=0, le=8, description="JSON indent in the report")
    verbose: bool = Field(default=False, description="Verbose output")
    quiet: bool = Field(default=False, description="Quiet mode")


class WatchConfiguration(BaseModel):
    """Complete dlwatch configuration."""

    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    output: OutputSettings = Field(default_factory=OutputSettings)

    config_file_path: Optional[Path] = Field(default=None, description="Source config file")
    loaded_from: List[str] = Field(default_factory=list, description="Configuration sources")

    def to_observation_config(self) -> ObservationConfig:
        capture = self.capture
        return ObservationConfig(
            url=capture.url,
            wait_seconds=capture.wait_seconds,
            poll_interval=capture.poll_interval,
            call_timeout_seconds=capture.call_timeout_seconds,
            navigation_timeout_ms=int(capture.navigation_timeout_seconds * 1000),
            wait_until=capture.wait_until,
            inject=capture.inject,
            console_api=capture.console_api,
            queue_name=capture.queue_name,
            max_depth=capture.max_depth,
            extra_keywords=list(capture.extra_keywords),
        )

    def to_browser_config(self) -> BrowserConfig:
        return BrowserConfig(
            engine=self.browser.engine,
            headless=not self.browser.headful,
            devtools=self.browser.devtools,
            launch_args=list(self.browser.launch_args),
            user_agent=self.browser.user_agent,
        )


class ConfigurationLoader:
    """Loads and merges configuration from multiple sources."""

    ENV_PREFIX = "DLWATCH_"

    DEFAULT_CONFIG_FILES = [
        "dlwatch.yaml",
        "dlwatch.yml",
        "dlwatch.json",
    ]

    BOOLEAN_KEYS = (
        '.inject', '.console_api', '.headful', '.devtools', '.performance_log',
        '.verbose', '.quiet',
    )
    FLOAT_KEYS = (
        '.wait_seconds', '.poll_interval', '.call_timeout_seconds', '.navigation_timeout_seconds',
    )
    LIST_KEYS = ('.extra_keywords', '.launch_args')

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        self.environ = os.environ if environ is None else environ
        self.loaded_sources: List[str] = []

    def load_configuration(
        self,
        config_file: Optional[Path] = None,
        cli_overrides: Optional[Dict[str, Any]] = None,
        search_paths: Optional[List[Path]] = None
    ) -> WatchConfiguration:
        """Load configuration with precedence applied.

        Args:
            config_file: Explicitly specified config file
            cli_overrides: Nested dict of values set on the command line
            search_paths: Directories searched for a default config file

        Returns:
            Merged configuration

        Raises:
            FileNotFoundError: If config_file does not exist
            ValueError: If a file cannot be parsed or values fail validation
        """
        self.loaded_sources = ["defaults"]
        config_data: Dict[str, Any] = {}

        if not config_file:
            discovered = self._discover_config_file(search_paths or [Path.cwd()])
            if discovered:
                source = discovered.pop("_source_file")
                config_data = self._merge_config(config_data, discovered)
                self.loaded_sources.append(f"auto-discovered: {source}")

        if config_file:
            if not config_file.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_file}")
            config_data = self._merge_config(config_data, self._load_config_file(config_file))
            self.loaded_sources.append(f"config file: {config_file}")

        env_config = self._load_environment_variables()
        if env_config:
            config_data = self._merge_config(config_data, env_config)
            self.loaded_sources.append("environment variables")

        if cli_overrides:
            config_data = self._merge_config(config_data, cli_overrides)
            self.loaded_sources.append("CLI flags")

        config_data["loaded_from"] = self.loaded_sources
        if config_file:
            config_data["config_file_path"] = config_file

        return WatchConfiguration(**config_data)

    def _discover_config_file(self, search_paths: List[Path]) -> Optional[Dict[str, Any]]:
        for search_path in search_paths:
            for config_filename in self.DEFAULT_CONFIG_FILES:
                config_path = search_path / config_filename
                if config_path.is_file():
                    config_data = self._load_config_file(config_path)
                    config_data["_source_file"] = str(config_path)
                    return config_data
        return None

    def _load_config_file(self, config_path: Path) -> Dict[str, Any]:
        suffix = config_path.suffix.lower()
        if suffix not in ['.yaml', '.yml', '.json']:
            raise ValueError(f"Unsupported config file format: {config_path.suffix}")

        try:
            content = config_path.read_text(encoding='utf-8')
            if suffix == '.json':
                data = json.loads(content)
            else:
                data = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in config file {config_path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in config file {config_path}: {e}") from e
        except OSError as e:
            raise ValueError(f"Error loading config file {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Config file {config_path} must contain a mapping")
        return data

    def _load_environment_variables(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {}

        env_mapping = {
            f"{self.ENV_PREFIX}URL": "capture.url",
            f"{self.ENV_PREFIX}WAIT_SECONDS": "capture.wait_seconds",
            f"{self.ENV_PREFIX}POLL_INTERVAL": "capture.poll_interval",
            f"{self.ENV_PREFIX}CALL_TIMEOUT": "capture.call_timeout_seconds",
            f"{self.ENV_PREFIX}NAVIGATION_TIMEOUT": "capture.navigation_timeout_seconds",
            f"{self.ENV_PREFIX}INJECT": "capture.inject",
            f"{self.ENV_PREFIX}CONSOLE_API": "capture.console_api",
            f"{self.ENV_PREFIX}QUEUE_NAME": "capture.queue_name",
            f"{self.ENV_PREFIX}EXTRA_KEYWORDS": "capture.extra_keywords",
            f"{self.ENV_PREFIX}ENGINE": "browser.engine",
            f"{self.ENV_PREFIX}HEADFUL": "browser.headful",
            f"{self.ENV_PREFIX}DEVTOOLS": "browser.devtools",
            f"{self.ENV_PREFIX}LAUNCH_ARGS": "browser.launch_args",
            f"{self.ENV_PREFIX}PERFORMANCE_LOG": "browser.performance_log",
            f"{self.ENV_PREFIX}OUTPUT_FILE": "output.output_file",
            f"{self.ENV_PREFIX}VERBOSE": "output.verbose",
            f"{self.ENV_PREFIX}QUIET": "output.quiet",
        }

        for env_var, config_path in env_mapping.items():
            env_value = self.environ.get(env_var)
            if env_value is not None:
                self._set_nested_value(config, config_path, self._convert_env_value(env_value, config_path))

        return config

    def _convert_env_value(self, value: str, config_path: str) -> Any:
        if config_path.endswith(self.BOOLEAN_KEYS):
            return value.lower() in ('true', '1', 'yes', 'on')

        if config_path.endswith(self.FLOAT_KEYS):
            try:
                return float(value)
            except ValueError as e:
                raise ValueError(f"Invalid number for {config_path}: {value!r}") from e

        if config_path.endswith(self.LIST_KEYS):
            return [item.strip() for item in value.split(',') if item.strip()]

        if config_path.endswith('.output_file'):
            return Path(value) if value else None

        return value

    def _set_nested_value(self, config: Dict[str, Any], path: str, value: Any) -> None:
        keys = path.split('.')
        current = config
        for key in keys[:-1]:
            current = current.setdefault(key, {})
        current[keys[-1]] = value

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Merge configuration dictionaries, with override taking precedence."""
        if not override:
            return base

        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result


def load_configuration(
    config_file: Optional[Path] = None,
    cli_overrides: Optional[Dict[str, Any]] = None,
    search_paths: Optional[List[Path]] = None
) -> WatchConfiguration:
    """Convenience function to load configuration."""
    return ConfigurationLoader().load_configuration(config_file, cli_overrides, search_paths)


def print_configuration(config: WatchConfiguration, format: str = "yaml") -> str:
    """Render configuration for ``--print-config``.

    Args:
        config: Configuration to print
        format: Output format (yaml, json)

    Returns:
        Formatted configuration string
    """
    config_dict = config.model_dump(
        mode="json",
        exclude={'loaded_from', 'config_file_path'},
    )

    if format.lower() == "json":
        return json.dumps(config_dict, indent=2)
    return yaml.safe_dump(config_dict, default_flow_style=False, sort_keys=True)
