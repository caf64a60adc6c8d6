"""Configuration persistence manager for the vectorforge graph compiler.

This module handles loading and saving of engine configuration to/from JSON files.
"""

import json
from dataclasses import asdict, fields
from pathlib import Path
from typing import Optional, Tuple

from .models import CONFIG_FILE, EngineConfig


class ConfigManager:
    """Handles loading and saving of engine configuration."""

    def __init__(self, config_path: Path = CONFIG_FILE):
        """Initialize config manager.

        Args:
            config_path: Path to configuration file (defaults to ~/.vectorforge_config.json)
        """
        self.config_path = Path(config_path)

    def load(self) -> EngineConfig:
        """Load configuration from file, returning defaults if not found.

        Returns:
            EngineConfig with loaded or default values
        """
        config = EngineConfig()

        try:
            if self.config_path.exists():
                with open(self.config_path, "r") as f:
                    data = json.load(f)
                if not isinstance(data, dict):
                    raise ValueError("top-level JSON value is not an object")

                # Update config with loaded values (fallback to defaults)
                for config_field in fields(EngineConfig):
                    default = getattr(config, config_field.name)
                    value = data.get(config_field.name, default)
                    # AIDEV-NOTE: bool is a subclass of int, check it first
                    if isinstance(default, bool):
                        value = value if isinstance(value, bool) else default
                    elif isinstance(default, int) and (
                        not isinstance(value, int) or isinstance(value, bool)
                    ):
                        value = default
                    setattr(config, config_field.name, value)
                print(f"✓ Loaded configuration from {self.config_path}")
        except Exception as e:
            print(f"Warning: Could not load config file: {e}")
            config = EngineConfig()

        return config

    def save(self, config: EngineConfig) -> Tuple[bool, Optional[str]]:
        """Save configuration to file.

        Args:
            config: EngineConfig to save

        Returns:
            Tuple of (success: bool, error_message: Optional[str])
        """
        try:
            with open(self.config_path, "w") as f:
                json.dump(asdict(config), f, indent=2)
            return True, None
        except Exception as e:
            return False, str(e)
