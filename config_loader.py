"""
Configuration loader with central API support, local file and built-in defaults.
"""
import copy
import requests
import yaml
import socket
import logging
import os
from typing import Dict, Optional


DEFAULT_CONFIG = {
    "collector": "rapl",
    "port": 9110,
    "management_port": 9111,
    "instance": None,
    "log_level": "INFO",
    "rapl": {
        "powercap_root": "/sys/class/powercap",
        "zone_prefix": "intel-rapl",
        "evict_stale_domains": False,
        "per_domain_metrics": False,
    },
}


def merge_config(base: Dict, override: Dict) -> Dict:
    """
    Recursively merge override into a copy of base.

    Args:
        base: Default configuration
        override: Values that take precedence

    Returns:
        New merged dictionary
    """
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigLoader:
    """
    Load configuration from central Config API server, local file or defaults.

    Priority:
    1. Fetch from central Config API server (only if CONFIG_SERVER_URL is set)
    2. Load from local config.yaml
    3. Fall back to built-in defaults

    Whatever is found is merged over DEFAULT_CONFIG.

    Environment variables:
    - CONFIG_SERVER_URL: Central config server URL (default: unset)
    - CONFIG_TIMEOUT: Request timeout in seconds (default: 5)
    - LOCAL_CONFIG_PATH: Path to local config file (default: ./config.yaml)
    """

    def __init__(self):
        self.config_server_url = os.getenv("CONFIG_SERVER_URL")
        self.local_config_path = os.getenv(
            "LOCAL_CONFIG_PATH",
            "./config.yaml"
        )
        self.timeout = int(os.getenv("CONFIG_TIMEOUT", "5"))
        self.device_id = socket.gethostname()
        self.logger = logging.getLogger(self.__class__.__name__)

    def load(self) -> Dict:
        """
        Load configuration with central API + local file + defaults.

        Returns:
            Configuration dictionary

        Raises:
            ValueError: If the local config file exists but is malformed
        """
        # 1. Try central Config API
        if self.config_server_url:
            try:
                config = self._fetch_from_server()
                if config:
                    self.logger.info("✅ Loaded config from central server")
                    return merge_config(DEFAULT_CONFIG, config)
            except Exception as e:
                self.logger.warning(f"⚠️ Failed to fetch from central server: {e}")

        # 2. Local config.yaml
        config = self._load_local_config()
        if config is not None:
            self.logger.info("✅ Loaded local config")
            return merge_config(DEFAULT_CONFIG, config)

        # 3. Defaults
        self.logger.info("Using built-in default config")
        return copy.deepcopy(DEFAULT_CONFIG)

    def _fetch_from_server(self) -> Dict:
        """
        Fetch configuration from central Config API server.

        Returns:
            Configuration dictionary from server

        Raises:
            Exception: If request fails or server returns error
        """
        url = f"{self.config_server_url}/config/{self.device_id}"
        self.logger.info(f"Fetching config from {url}")

        response = requests.get(url, timeout=self.timeout)
        response.raise_for_status()

        config = response.json()
        if not isinstance(config, dict):
            raise ValueError(f"Config server returned {type(config).__name__}, expected object")

        self.logger.debug(f"Received config: {config}")
        return config

    def _load_local_config(self) -> Optional[Dict]:
        """
        Load configuration from local config.yaml file.

        Returns:
            Configuration dictionary, or None if the file does not exist

        Raises:
            ValueError: If the file content is not a mapping
        """
        if not os.path.exists(self.local_config_path):
            self.logger.warning(f"⚠️ Local config not found at {self.local_config_path}")
            return None

        self.logger.info(f"Loading config from {self.local_config_path}")

        with open(self.local_config_path, 'r') as f:
            config = yaml.safe_load(f)

        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ValueError(f"Local config file must contain a mapping: {self.local_config_path}")

        self.logger.debug(f"Loaded local config: {config}")
        return config
