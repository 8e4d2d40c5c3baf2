"""Unit tests for CLI configuration loading."""

import json
from pathlib import Path

import pytest
import yaml

from dlwatch.capture.browser_factory import DEFAULT_LAUNCH_ARGS
from dlwatch.cli.config import (
    ConfigurationLoader,
    WatchConfiguration,
    print_configuration,
)


@pytest.fixture
def loader():
    return ConfigurationLoader(environ={})


class TestWatchConfiguration:
    """Tests for WatchConfiguration defaults and conversions."""

    def test_defaults(self):
        config = WatchConfiguration()

        assert config.capture.url == "https://developers.google.com/"
        assert config.capture.wait_seconds == 10
        assert config.capture.poll_interval == 1.0
        assert config.capture.inject is True
        assert config.browser.headful is False
        assert config.browser.launch_args == DEFAULT_LAUNCH_ARGS

    def test_to_observation_config(self):
        config = WatchConfiguration(capture={"wait_seconds": 3, "navigation_timeout_seconds": 12})

        observation = config.to_observation_config()

        assert observation.wait_seconds == 3
        assert observation.navigation_timeout_ms == 12000
        assert observation.queue_name == "dataLayer"

    def test_to_browser_config(self):
        config = WatchConfiguration(browser={"headful": True, "engine": "Firefox"})

        browser = config.to_browser_config()

        assert browser.headless is False
        assert browser.engine == "firefox"

    @pytest.mark.parametrize("section,values", [
        ("capture", {"url": "ftp://example.com"}),
        ("capture", {"wait_seconds": -1}),
        ("capture", {"poll_interval": 0}),
        ("capture", {"queue_name": "data-layer"}),
        ("capture", {"wait_until": "idle"}),
        ("browser", {"engine": "opera"}),
    ])
    def test_invalid_values(self, section, values):
        with pytest.raises(ValueError):
            WatchConfiguration(**{section: values})


class TestConfigurationLoader:
    """Tests for ConfigurationLoader precedence."""

    def test_defaults_only(self, loader, tmp_path):
        config = loader.load_configuration(search_paths=[tmp_path])

        assert config.loaded_from == ["defaults"]

    def test_auto_discovered_yaml(self, loader, tmp_path):
        (tmp_path / "dlwatch.yaml").write_text(yaml.safe_dump({"capture": {"wait_seconds": 4}}))

        config = loader.load_configuration(search_paths=[tmp_path])

        assert config.capture.wait_seconds == 4
        assert config.loaded_from[-1].startswith("auto-discovered")

    def test_explicit_json_file(self, loader, tmp_path):
        path = tmp_path / "custom.json"
        path.write_text(json.dumps({"capture": {"url": "https://example.com"}}))

        config = loader.load_configuration(config_file=path, search_paths=[tmp_path])

        assert config.capture.url == "https://example.com"
        assert config.config_file_path == path

    def test_missing_file(self, loader, tmp_path):
        with pytest.raises(FileNotFoundError):
            loader.load_configuration(config_file=tmp_path / "missing.yaml")

    def test_invalid_yaml(self, loader, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("capture: [unclosed")

        with pytest.raises(ValueError):
            loader.load_configuration(config_file=path)

    def test_unsupported_format(self, loader, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("[capture]")

        with pytest.raises(ValueError):
            loader.load_configuration(config_file=path)

    def test_precedence(self, tmp_path):
        path = tmp_path / "dlwatch.yaml"
        path.write_text(yaml.safe_dump({
            "capture": {"wait_seconds": 4, "poll_interval": 2.0, "url": "https://file.example.com"},
        }))
        loader = ConfigurationLoader(environ={
            "DLWATCH_WAIT_SECONDS": "6",
            "DLWATCH_POLL_INTERVAL": "0.5",
        })

        config = loader.load_configuration(
            config_file=path,
            cli_overrides={"capture": {"wait_seconds": 8}},
        )

        assert config.capture.wait_seconds == 8
        assert config.capture.poll_interval == 0.5
        assert config.capture.url == "https://file.example.com"
        assert config.loaded_from == [
            "defaults",
            f"config file: {path}",
            "environment variables",
            "CLI flags",
        ]

    def test_environment_conversions(self, tmp_path):
        loader = ConfigurationLoader(environ={
            "DLWATCH_INJECT": "false",
            "DLWATCH_HEADFUL": "yes",
            "DLWATCH_EXTRA_KEYWORDS": "segment, tealium",
            "DLWATCH_OUTPUT_FILE": str(tmp_path / "events.json"),
        })

        config = loader.load_configuration(search_paths=[tmp_path])

        assert config.capture.inject is False
        assert config.browser.headful is True
        assert config.capture.extra_keywords == ["segment", "tealium"]
        assert config.output.output_file == tmp_path / "events.json"

    def test_invalid_environment_number(self, tmp_path):
        loader = ConfigurationLoader(environ={"DLWATCH_WAIT_SECONDS": "soon"})

        with pytest.raises(ValueError):
            loader.load_configuration(search_paths=[tmp_path])


class TestPrintConfiguration:
    """Tests for print_configuration."""

    def test_yaml_and_json(self):
        config = WatchConfiguration()

        as_yaml = yaml.safe_load(print_configuration(config))
        as_json = json.loads(print_configuration(config, format="json"))

        assert as_yaml == as_json
        assert as_yaml["capture"]["url"] == "https://developers.google.com/"
        assert "loaded_from" not in as_yaml
