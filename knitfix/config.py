"""
Configuration management for knitfix.

Handles loading project-level configuration for document repairs.

Configuration priority (highest to lowest):
1. Environment variables (for CI / batch grading machines)
2. knitfix.json file (for local use, path overridable with KNITFIX_CONFIG)
3. Built-in defaults
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models.repair import RepairOptions

logger = logging.getLogger(__name__)

# Config file path (current directory unless KNITFIX_CONFIG points elsewhere)
CONFIG_FILE = Path("knitfix.json")

# Default values (used when neither env var nor knitfix.json specifies)
DEFAULT_LANGUAGE = "python"
DEFAULT_DATA_FOLDER = "auto"
DEFAULT_RENDER_COMMAND = "quarto render"


class Config:
    """
    Project-level configuration manager.

    Priority: ENV > knitfix.json > defaults

    Environment variables:
      - KNITFIX_CONFIG: Path to the JSON config file
      - KNITFIX_LANGUAGE: Chunk language to repair (default: python)
      - KNITFIX_DATA_FOLDER: Data folder policy (auto, ., .., or a subfolder name)
      - KNITFIX_RENDER_COMMAND: Renderer command line (default: quarto render)
      - KNITFIX_MAX_ROWS: Row limit written into the injected setup code
    """

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = Path(config_file) if config_file else self._config_path()
        self.data = self.load()

    def _config_path(self) -> Path:
        env_path = os.getenv("KNITFIX_CONFIG")
        if env_path:
            return Path(env_path)
        return CONFIG_FILE

    def load(self) -> Dict[str, Any]:
        """Load configuration from file."""
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    return json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Failed to load config {self.config_file}: {e}")
                return self._default_config()
        else:
            return self._default_config()

    def _default_config(self) -> Dict[str, Any]:
        """Return default configuration."""
        return {
            "language": DEFAULT_LANGUAGE,
            "data_folder": DEFAULT_DATA_FOLDER,
            "display": {
                "max_rows": 50,
                "max_columns": 20,
                "width": 80,
                "threshold": 1000,
            },
            "render": {
                "command": DEFAULT_RENDER_COMMAND,
            },
        }

    def get_language(self) -> str:
        """Get chunk language (KNITFIX_LANGUAGE > knitfix.json > default)."""
        env_language = os.getenv("KNITFIX_LANGUAGE")
        if env_language:
            return env_language
        return self.data.get("language", DEFAULT_LANGUAGE)

    def get_data_folder(self) -> str:
        """Get data folder policy (KNITFIX_DATA_FOLDER > knitfix.json > default)."""
        env_folder = os.getenv("KNITFIX_DATA_FOLDER")
        if env_folder:
            return env_folder
        return self.data.get("data_folder", DEFAULT_DATA_FOLDER)

    def get_render_command(self) -> List[str]:
        """Get renderer command as an argv prefix."""
        env_command = os.getenv("KNITFIX_RENDER_COMMAND")
        if env_command:
            return env_command.split()
        command = self.data.get("render", {}).get("command", DEFAULT_RENDER_COMMAND)
        if isinstance(command, list):
            return [str(part) for part in command]
        return str(command).split()

    def get_max_rows(self) -> int:
        env_rows = os.getenv("KNITFIX_MAX_ROWS")
        if env_rows:
            try:
                return int(env_rows)
            except ValueError:
                logger.warning(f"Ignoring non-integer KNITFIX_MAX_ROWS={env_rows!r}")
        return int(self.data.get("display", {}).get("max_rows", 50))

    def repair_options(self, **overrides: Any) -> RepairOptions:
        """Build RepairOptions from the configuration, then apply explicit overrides."""
        display = self.data.get("display", {})
        values: Dict[str, Any] = {
            "language": self.get_language(),
            "data_folder": self.get_data_folder(),
            "max_rows": self.get_max_rows(),
            "max_columns": int(display.get("max_columns", 20)),
            "display_width": int(display.get("width", 80)),
            "print_threshold": int(display.get("threshold", 1000)),
        }
        for key in ("output_suffix", "backup_suffix", "max_message_length"):
            if key in self.data:
                values[key] = self.data[key]
        values.update({k: v for k, v in overrides.items() if v is not None})
        return RepairOptions(**values)


# Global config instance
config = Config()
