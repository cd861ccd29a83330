# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

"""
Logging Configuration Utilities

Provides helper functions to access structured logging configuration
per module without scattering config lookups throughout the codebase.
"""

import copy
import logging
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass

from CONFIG.config_loader import get_config_path, load_config


@dataclass
class ModuleLoggingConfig:
    """Per-module logging configuration"""
    cv_detail: bool = False
    detail: bool = False


@dataclass
class BackendLoggingConfig:
    """Backend library logging configuration"""
    native_verbosity: int = -1


class LoggingConfigManager:
    """Manages structured logging configuration"""

    _instance: Optional['LoggingConfigManager'] = None

    def __init__(self, config_path: Optional[Path] = None, profile: Optional[str] = None):
        """Initialize logging config manager"""
        if config_path is None:
            config_path = get_config_path("logging_config")

        self.config_path = Path(config_path)
        self._active_profile = profile or "default"
        self._config: Dict[str, Any] = {}
        self._load_config()
        self._apply_profile()

    @classmethod
    def get_instance(cls, config_path: Optional[Path] = None, profile: Optional[str] = None) -> 'LoggingConfigManager':
        """Get singleton instance"""
        if cls._instance is None:
            cls._instance = cls(config_path, profile)
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton (next access reloads the YAML)"""
        cls._instance = None

    def _load_config(self):
        """Load logging configuration from YAML"""
        data = load_config(str(self.config_path)) if self.config_path.exists() else {}
        self._config = copy.deepcopy(data.get("logging") or self._get_default_config())

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default logging configuration"""
        return {
            'global_level': 'INFO',
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'date_format': '%Y-%m-%d %H:%M:%S',
            'modules': {},
            'backends': {
                'lightgbm': {'native_verbosity': -1},
                'xgboost': {'native_verbosity': 0},
            },
            'profiles': {}
        }

    def _apply_profile(self):
        """Apply active profile to config"""
        if self._active_profile == "default" or not self._active_profile:
            return

        profiles = self._config.get('profiles', {})
        if self._active_profile not in profiles:
            logging.warning(f"Profile '{self._active_profile}' not found, using default")
            return

        profile = profiles[self._active_profile]

        # Merge profile into base config
        if 'global_level' in profile:
            self._config['global_level'] = profile['global_level']

        if 'modules' in profile:
            for module_name, module_overrides in profile['modules'].items():
                # Copy so the cached YAML document is never mutated
                module = dict(self._config.get('modules', {}).get(module_name, {}))
                module.update(module_overrides)
                self._config.setdefault('modules', {})[module_name] = module

    def get_module_config(self, module_name: str) -> ModuleLoggingConfig:
        """Get module-specific logging configuration"""
        modules = self._config.get('modules', {})
        module_data = modules.get(module_name, {})

        return ModuleLoggingConfig(
            cv_detail=module_data.get('cv_detail', False),
            detail=module_data.get('detail', False)
        )

    def get_backend_config(self, backend_name: str) -> BackendLoggingConfig:
        """Get backend-specific logging configuration"""
        backends = self._config.get('backends', {})
        backend_data = backends.get(backend_name, {})

        return BackendLoggingConfig(
            native_verbosity=backend_data.get('native_verbosity', -1),
        )

    def get_global_level(self) -> str:
        """Get global logging level"""
        return self._config.get('global_level', 'INFO')

    def get_format(self) -> str:
        return self._config.get('format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    def get_date_format(self) -> str:
        return self._config.get('date_format', '%Y-%m-%d %H:%M:%S')


# Convenience functions for easy access
_logging_manager: Optional[LoggingConfigManager] = None


def init_logging_config(config_path: Optional[Path] = None, profile: Optional[str] = None):
    """Initialize logging configuration (call once at startup)"""
    global _logging_manager
    LoggingConfigManager.reset()
    _logging_manager = LoggingConfigManager.get_instance(config_path, profile)

    # Set global logging level
    global_level = _logging_manager.get_global_level()
    logging.basicConfig(
        level=getattr(logging, global_level),
        format=_logging_manager.get_format(),
        datefmt=_logging_manager.get_date_format(),
    )
    logging.getLogger().setLevel(getattr(logging, global_level))

    # Quiet the boosting libraries unless asked otherwise
    for backend in ('xgboost', 'lightgbm'):
        if _logging_manager.get_backend_config(backend).native_verbosity <= 0:
            logging.getLogger(backend).setLevel(logging.WARNING)

    return _logging_manager


def get_module_logging_config(module_name: str) -> ModuleLoggingConfig:
    """Get module logging config (lazy initialization if needed)"""
    global _logging_manager
    if _logging_manager is None:
        _logging_manager = LoggingConfigManager.get_instance()
    return _logging_manager.get_module_config(module_name)


def get_backend_logging_config(backend_name: str) -> BackendLoggingConfig:
    """Get backend logging config (lazy initialization if needed)"""
    global _logging_manager
    if _logging_manager is None:
        _logging_manager = LoggingConfigManager.get_instance()
    return _logging_manager.get_backend_config(backend_name)
