"""Configuration Management for CLI Settings"""

import os
from pathlib import Path
from typing import Any

import yaml
from rich.console import Console

console = Console()


class ConfigManager:
    """Manage CLI configuration settings"""

    def __init__(self, config_dir: Path | None = None):
        self.config_dir = config_dir or Path.home() / ".verifyflow"
        self.config_file = self.config_dir / "config.yaml"

    def ensure_config_dir(self):
        """Ensure config directory exists"""
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def load_config(self) -> dict[str, Any]:
        """Load configuration from file"""
        if not self.config_file.exists():
            return self._apply_env(self.get_default_config())

        try:
            with open(self.config_file) as f:
                config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            console.print(f"[red]Error loading config: {e}[/red]")
            return self._apply_env(self.get_default_config())

        # Merge with defaults to ensure all keys exist
        default_config = self.get_default_config()
        for section, values in config.items():
            if isinstance(values, dict) and isinstance(default_config.get(section), dict):
                default_config[section].update(values)
            else:
                default_config[section] = values
        return self._apply_env(default_config)

    def _apply_env(self, config: dict[str, Any]) -> dict[str, Any]:
        """VERIFYFLOW_API_URL takes precedence over the config file"""
        api_url = os.getenv("VERIFYFLOW_API_URL")
        if api_url:
            config.setdefault("api", {})["base_url"] = api_url
        return config

    def save_config(self, config: dict[str, Any]):
        """Save configuration to file"""
        self.ensure_config_dir()
        with open(self.config_file, "w") as f:
            yaml.dump(config, f, default_flow_style=False)

    def get_default_config(self) -> dict[str, Any]:
        """Get default configuration"""
        return {
            "api": {
                "base_url": "http://localhost:8000",
                "timeout": 30,
            },
            "display": {"jobs_per_state": 5, "show_colors": True},
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'api.base_url')"""
        config = self.load_config()

        for k in key.split("."):
            if isinstance(config, dict) and k in config:
                config = config[k]
            else:
                return default

        return config

    def set(self, key: str, value: Any):
        """Set configuration value using dot notation"""
        config = self.load_config()
        keys = key.split(".")

        # Navigate to the parent dict
        current = config
        for k in keys[:-1]:
            current = current.setdefault(k, {})

        current[keys[-1]] = value
        self.save_config(config)

    def reset(self):
        """Reset configuration to defaults"""
        self.save_config(self.get_default_config())


# Global config manager instance
config = ConfigManager()
