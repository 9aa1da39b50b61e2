"""
Configuration for the target-size image compressor.
Provides defaults that match the original browser tool and helpers to
override them from the UI.
"""

import copy
import math
from typing import Dict, Any, Optional

from compression.target_search import SearchConfig


# Default configuration - works out-of-the-box for photos and screenshots
DEFAULT_CONFIG = {
    # Quality / scale search
    "search": {
        "quality_range": (30, 95),  # clamped to [5, 100]
        "scale_floor": 0.35,  # smallest scale factor tried
        "scale_step": 0.82,  # decay per scale step
        "early_exit_fraction": 0.98,  # stop once best result reaches this share of target
    },

    # Output
    "output": {
        "format": "auto",  # auto | jpeg | png | webp
        "suffix": "_reduced",
    },

    # Target size entry
    "target": {
        "value": 200,
        "unit": "KB",  # KB | MB
    },

    # Formats offered in the UI
    "formats": ["auto", "JPEG", "WEBP", "PNG"],
}

UNIT_MULTIPLIERS = {
    "B": 1,
    "KB": 1024,
    "MB": 1024 * 1024,
}


def get_default_config() -> Dict[str, Any]:
    """Return a copy of the default configuration."""
    return copy.deepcopy(DEFAULT_CONFIG)


def merge_configs(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge override config into base config.

    Args:
        base: Base configuration dictionary
        override: Override values to apply

    Returns:
        Merged configuration
    """
    result = copy.deepcopy(base)

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = copy.deepcopy(value)

    return result


def build_search_config(config: Optional[Dict[str, Any]] = None) -> SearchConfig:
    """
    Build a validated SearchConfig from a (partial) configuration dictionary.

    Missing keys fall back to DEFAULT_CONFIG.

    Raises:
        ValueError: if a search parameter is out of range
    """
    merged = merge_configs(DEFAULT_CONFIG, config or {})
    search = merged["search"]
    output = merged["output"]

    q_min, q_max = search["quality_range"]
    return SearchConfig(
        quality_min=q_min,
        quality_max=q_max,
        scale_floor=search["scale_floor"],
        scale_step=search["scale_step"],
        early_exit_fraction=search["early_exit_fraction"],
        format=output["format"],
    )


def to_target_bytes(value: float, unit: str = "KB") -> int:
    """
    Convert a size entered in the UI to whole bytes.

    Args:
        value: Size in the given unit
        unit: "B", "KB" or "MB" (1024 based)

    Returns:
        Rounded byte count
    """
    unit = unit.upper()
    if unit not in UNIT_MULTIPLIERS:
        raise ValueError(f"Unsupported size unit: {unit}")
    return int(math.floor(value * UNIT_MULTIPLIERS[unit] + 0.5))
