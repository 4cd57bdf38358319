"""Configuration package for AgriAdvisor"""

from .config_loader import load_config, DEFAULT_CONFIG

__all__ = ['load_config', 'DEFAULT_CONFIG']
