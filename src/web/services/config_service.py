from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional, Tuple

import yaml

ENV_OVERRIDES = {
    "RELAY_ENV": ("server", "environment"),
    "RELAY_LOG_LEVEL": ("log_level",),
}


class ConfigService:
    """
    Manages layered config:
    - config/default.yaml (checked in)
    - config/config.yaml (local overrides)
    - an explicit --config file (treated as overrides)
    - RELAY_* environment variables
    """

    DEFAULT_PATH = os.path.join("config", "default.yaml")
    OVERRIDES_PATH = os.path.join("config", "config.yaml")

    @staticmethod
    def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        for k, v in (override or {}).items():
            if isinstance(v, dict) and isinstance(base.get(k), dict):
                ConfigService._deep_merge(base[k], v)
            else:
                base[k] = v
        return base

    @staticmethod
    def _read_yaml(path: str) -> Dict[str, Any]:
        if not path or not os.path.exists(path):
            return {}
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a YAML mapping")
        return data

    @staticmethod
    def paths(config_dir: Optional[str] = None) -> Tuple[str, str]:
        """(default, overrides) paths, relative to config_dir when given."""
        if config_dir is None:
            return ConfigService.DEFAULT_PATH, ConfigService.OVERRIDES_PATH
        return os.path.join(config_dir, "default.yaml"), os.path.join(config_dir, "config.yaml")

    @staticmethod
    def load_default(config_dir: Optional[str] = None) -> Dict[str, Any]:
        return ConfigService._read_yaml(ConfigService.paths(config_dir)[0])

    @staticmethod
    def load_overrides(config_dir: Optional[str] = None) -> Dict[str, Any]:
        return ConfigService._read_yaml(ConfigService.paths(config_dir)[1])

    @staticmethod
    def apply_env(cfg: Dict[str, Any], environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        environ = os.environ if environ is None else environ
        for var, keys in ENV_OVERRIDES.items():
            value = environ.get(var)
            if not value:
                continue
            target = cfg
            for key in keys[:-1]:
                target = target.setdefault(key, {})
            target[keys[-1]] = value
            logging.debug(f"Config override from {var}")
        return cfg

    @staticmethod
    def load_effective_config(
        explicit_path: Optional[str] = None,
        environ: Optional[Dict[str, str]] = None,
        config_dir: Optional[str] = None,
    ) -> Dict[str, Any]:
        overrides_path = ConfigService.paths(config_dir)[1]
        merged = ConfigService.load_default(config_dir)
        merged = ConfigService._deep_merge(merged, ConfigService.load_overrides(config_dir))
        if explicit_path and os.path.abspath(explicit_path) != os.path.abspath(overrides_path):
            merged = ConfigService._deep_merge(merged, ConfigService._read_yaml(explicit_path))
        return ConfigService.apply_env(merged, environ)
