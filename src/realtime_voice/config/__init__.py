"""Configuration loading and logging setup."""

from .settings import RealtimeConfig, create_example_env_file, load_config, setup_logging

__all__ = ["RealtimeConfig", "load_config", "create_example_env_file", "setup_logging"]
