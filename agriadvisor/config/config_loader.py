"""
Configuration loader for AgriAdvisor
"""

import copy
import os
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional

from dotenv import load_dotenv


logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    'database': {
        'url': 'sqlite+aiosqlite:///./data/agriadvisor.db',
        'echo': False
    },
    'api': {
        'host': '0.0.0.0',
        'port': 8080,
        'cors_origins': ['*']
    },
    'auth': {
        'secret': 'development-secret-change-in-production',
        'token_ttl_hours': 24 * 30
    },
    'sync': {
        'retention_days': 7,
        'clear_windows': {'7d': 7, '30d': 30, '90d': 90},
        'default_clear_window': '30d'
    },
    'outbreaks': {
        'cluster_radius_degrees': 0.09,  # ~10 km
        'alert_radius_km': 25,
        'alert_case_threshold': 10,
        'default_list_limit': 50
    },
    'client': {
        'store_url': 'sqlite+aiosqlite:///./data/offline.db',
        'base_url': 'http://localhost:8080',
        'auth_token': '',
        'request_timeout_seconds': 10,
        'max_concurrent_deliveries': 10,
        'failure_threshold': 5,
        'retention_days': 7,
        'cache_max_age_seconds': 6 * 3600,
        'probe_interval_seconds': 30
    },
    'providers': {
        'weather': {
            'type': 'fake',
            'api_key': '',
            'base_url': 'https://api.openweathermap.org/data/2.5'
        },
        'market': {
            'type': 'fake',
            'base_url': ''
        },
        'classifier': {
            'type': 'fake',
            'endpoint': '',
            'model_version': 'fake-1.0'
        }
    },
    'notifications': {
        'enabled': True,
        'channels': {
            'webhook': {
                'enabled': False,
                'url': '',
                'api_key': ''
            }
        }
    }
}


def load_config(yaml_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load configuration from environment and YAML files"""

    # Load environment variables
    load_dotenv()

    config = copy.deepcopy(DEFAULT_CONFIG)

    # Single source of truth: config/agriadvisor.yaml
    yaml_path = yaml_path or Path('config/agriadvisor.yaml')

    if yaml_path.exists():
        try:
            with open(yaml_path, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f)
                if yaml_config:
                    _deep_update(config, yaml_config)
                    logger.info(f"Configuration loaded from {yaml_path}")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load configuration from {yaml_path}: {e}")
            logger.error("Using default configuration")
    else:
        logger.warning(f"Configuration file {yaml_path} not found, using defaults")

    # Override with environment variables
    if os.getenv('DATABASE_URL'):
        config['database']['url'] = os.getenv('DATABASE_URL')

    if os.getenv('AGRI_AUTH_SECRET'):
        config['auth']['secret'] = os.getenv('AGRI_AUTH_SECRET')

    if os.getenv('AGRI_SERVER_URL'):
        config['client']['base_url'] = os.getenv('AGRI_SERVER_URL')

    if os.getenv('AGRI_AUTH_TOKEN'):
        config['client']['auth_token'] = os.getenv('AGRI_AUTH_TOKEN')

    if os.getenv('OPENWEATHER_API_KEY'):
        config['providers']['weather']['api_key'] = os.getenv('OPENWEATHER_API_KEY')
        config['providers']['weather']['type'] = 'openweather'

    if os.getenv('AGRI_ALERT_WEBHOOK_URL'):
        config['notifications']['channels']['webhook']['url'] = os.getenv('AGRI_ALERT_WEBHOOK_URL')
        config['notifications']['channels']['webhook']['enabled'] = True

    if os.getenv('LOG_LEVEL'):
        log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
        logging.getLogger().setLevel(getattr(logging, log_level, logging.INFO))

    logger.info("Configuration loaded successfully")
    return config


def _deep_update(base_dict: Dict[str, Any], update_dict: Dict[str, Any]) -> None:
    """Deep update nested dictionary"""
    for key, value in update_dict.items():
        if key in base_dict and isinstance(base_dict[key], dict) and isinstance(value, dict):
            _deep_update(base_dict[key], value)
        else:
            base_dict[key] = value
