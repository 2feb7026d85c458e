"""
Configuration loading and management for Entra Audit.

This module handles loading configuration from YAML files and environment variables,
with validation and defaults.
"""

import os
import yaml
import logging
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing required fields."""
    pass


class ConfigLoader:
    """Handles loading and validation of application configuration."""

    # Environment variable mappings for tenant identity and secrets
    ENV_OVERRIDES = {
        'graph.tenant_id': 'GRAPH_TENANT_ID',
        'graph.client_id': 'GRAPH_CLIENT_ID',
        'graph.client_secret': 'GRAPH_CLIENT_SECRET',
        'graph.truststore_password': 'GRAPH_TRUSTSTORE_PASSWORD',
    }

    VALID_TRUSTSTORE_TYPES = ('PEM', 'PKCS12')

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to config file. If None, uses CONFIG_PATH env var or 'config.yaml'
        """
        self.config_path = config_path or os.getenv('CONFIG_PATH', 'config.yaml')
        self.config = {}

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from file and apply environment overrides.

        Returns:
            Parsed and validated configuration dictionary

        Raises:
            ConfigurationError: If config file not found or validation fails
        """
        try:
            with open(self.config_path, 'r') as f:
                self.config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")

        if not isinstance(self.config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {self.config_path}")

        self._apply_env_overrides()
        self._validate()
        self._apply_defaults()

        logger.info(f"Configuration loaded successfully from {self.config_path}")
        return self.config

    def _apply_env_overrides(self):
        """Apply environment variable overrides for tenant identity and secrets."""
        for config_key, env_var in self.ENV_OVERRIDES.items():
            env_value = os.getenv(env_var)
            if env_value:
                self._set_nested_value(self.config, config_key, env_value)
                logger.debug(f"Applied environment override for {config_key}")

    def _set_nested_value(self, config: Dict, key_path: str, value: Any):
        """Set a nested configuration value using dot notation."""
        keys = key_path.split('.')
        current = config
        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
        current[keys[-1]] = value

    def _validate(self):
        """Validate required configuration fields."""
        errors = []

        graph_config = self.config.get('graph')
        if not isinstance(graph_config, dict):
            errors.append("Missing required section: graph")
            graph_config = {}

        for field in ['tenant_id', 'client_id', 'client_secret']:
            if not graph_config.get(field):
                errors.append(f"Missing required Graph field: {field}")

        truststore_type = str(graph_config.get('truststore_type', 'PEM')).upper()
        if truststore_type not in self.VALID_TRUSTSTORE_TYPES:
            errors.append(f"Unsupported graph.truststore_type '{truststore_type}' "
                          f"(expected one of {', '.join(self.VALID_TRUSTSTORE_TYPES)})")

        timeout = graph_config.get('timeout', 30)
        if not isinstance(timeout, (int, float)) or timeout <= 0:
            errors.append("graph.timeout must be a positive number")

        reporting_config = self.config.get('reporting', {}) or {}
        interval = reporting_config.get('progress_interval', 50)
        if not isinstance(interval, int) or interval <= 0:
            errors.append("reporting.progress_interval must be a positive integer")

        for section in ['input', 'audits', 'logging']:
            value = self.config.get(section)
            if value is not None and not isinstance(value, dict):
                errors.append(f"Section '{section}' must be a mapping")

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors))

    def _apply_defaults(self):
        """Apply default values for optional configuration fields."""
        graph_defaults = {
            'authority_url': 'https://login.microsoftonline.com',
            'base_url': 'https://graph.microsoft.com/v1.0',
            'scope': 'https://graph.microsoft.com/.default',
            'verify_ssl': True,
            'truststore_type': 'PEM',
            'timeout': 30
        }
        graph_config = self.config.setdefault('graph', {})
        for key, value in graph_defaults.items():
            graph_config.setdefault(key, value)

        input_defaults = {
            'identity_column': 'UserPrincipalName',
            'device_column': 'DeviceName',
            'group_column': None,
            'encoding': 'utf-8-sig',
            'delimiter': ','
        }
        input_config = self._section('input')
        for key, value in input_defaults.items():
            input_config.setdefault(key, value)

        # Per-audit defaults
        audit_defaults = {
            'disabled_w365': {'group_name_filter': 'w365'},
            'mfa_methods': {},
            'device_groups': {'group_id': None},
        }
        audits_config = self._section('audits')
        for audit_name, defaults in audit_defaults.items():
            if not isinstance(audits_config.get(audit_name), dict):
                audits_config[audit_name] = {}
            for key, value in defaults.items():
                audits_config[audit_name].setdefault(key, value)

        reporting_config = self._section('reporting')
        reporting_config.setdefault('progress_interval', 50)

        logging_defaults = {
            'level': 'INFO',
            'log_dir': 'logs',
            'rotation': 'daily',
            'retention_days': 7,
            'console_output': True,
            'console_level': 'WARNING'
        }
        logging_config = self._section('logging')
        for key, value in logging_defaults.items():
            logging_config.setdefault(key, value)

    def _section(self, name: str) -> Dict[str, Any]:
        """Return a top-level section, creating an empty one when absent or null."""
        section = self.config.get(name)
        if section is None:
            section = {}
            self.config[name] = section
        return section


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to config file

    Returns:
        Loaded configuration dictionary
    """
    loader = ConfigLoader(config_path)
    return loader.load()
