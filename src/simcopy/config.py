# Copyright (c) Syntropy Systems
"""Configuration management for simcopy."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, cast

import yaml

from simcopy.codec import ValueFormat


@dataclass
class CopyConfig:
    """Configuration for simcopy."""

    # printf-style format of float values in csv, None: round-trip repr
    double_format: Optional[str] = None

    # encoding of input csv files
    encoding: str = "utf-8"

    # write enum ids instead of enum codes into csv
    use_id_csv: bool = False

    # write utf-8 BOM into csv files
    utf8_bom: bool = False

    # copy output table accumulators, expressions are always copied
    include_accumulators: bool = True

    # pack text output into .zip
    zip: bool = False

    # seconds between progress log lines
    log_period: int = 5

    def value_format(self) -> ValueFormat:
        return ValueFormat(
            double_format=self.double_format or None,
            use_id_csv=self.use_id_csv,
            encoding=self.encoding or "utf-8",
            utf8_bom=self.utf8_bom,
        )


def find_simcopy_dir(start_path: Path | None = None) -> Path | None:
    """Find the nearest .simcopy directory by walking up from start_path.

    Returns None if no .simcopy directory is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        simcopy_dir = current / ".simcopy"
        if simcopy_dir.is_dir():
            return simcopy_dir
        current = current.parent

    # Check root
    simcopy_dir = current / ".simcopy"
    if simcopy_dir.is_dir():
        return simcopy_dir

    return None


def get_global_config_dir() -> Path:
    """Get the global simcopy config directory (~/.simcopy)."""
    return Path.home() / ".simcopy"


def load_config(config_path: Path | None = None) -> CopyConfig:
    """Load configuration from yaml file or defaults.

    Looks for config in:
    1. Provided config file path
    2. Nearest .simcopy directory walking up
    3. ~/.simcopy/config.yaml
    4. Defaults
    """
    config = CopyConfig()

    if config_path is None:
        found_dir = find_simcopy_dir()
        if found_dir is not None:
            config_path = found_dir / "config.yaml"
        else:
            global_config = get_global_config_dir() / "config.yaml"
            if global_config.exists():
                config_path = global_config
    elif not config_path.exists():
        msg = f"config file not found: {config_path}"
        raise FileNotFoundError(msg)

    if config_path is not None and config_path.exists():
        with config_path.open() as f:
            data = cast("dict[str, object]", yaml.safe_load(f) or {})

        double_format = data.get("double_format")
        if isinstance(double_format, str):
            config.double_format = double_format
        encoding = data.get("encoding")
        if isinstance(encoding, str):
            config.encoding = encoding
        for key in ("use_id_csv", "utf8_bom", "include_accumulators", "zip"):
            value = data.get(key)
            if isinstance(value, bool):
                setattr(config, key, value)
        log_period = data.get("log_period")
        if isinstance(log_period, (int, float)) and not isinstance(log_period, bool):
            config.log_period = int(log_period)

    return config
