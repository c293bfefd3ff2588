"""Load e2e configuration from environment variables."""

from __future__ import annotations

import logging
import os

from knctl_e2e.config.defaults import LOG_FORMAT
from knctl_e2e.models.config import E2EConfig

_ENV_PREFIX = "KNCTL_E2E_"

_FIELD_MAP = {
    "namespace": "NAMESPACE",
    "knctl_binary": "KNCTL_BINARY",
    "system_namespace": "SYSTEM_NAMESPACE",
    "local_env_node_name": "LOCAL_ENV_NODE_NAME",
    "local_ip_command": "LOCAL_IP_COMMAND",
    "kubeconfig": "KUBECONFIG",
    "log_level": "LOG_LEVEL",
}


def load_e2e_config() -> E2EConfig:
    """Build E2EConfig from env vars (prefixed KNCTL_E2E_) with defaults."""
    overrides: dict[str, str] = {}
    for field_name, env_suffix in _FIELD_MAP.items():
        env_key = f"{_ENV_PREFIX}{env_suffix}"
        val = os.environ.get(env_key)
        if val is not None:
            overrides[field_name] = val
    return E2EConfig(**overrides)


def configure_logging(cfg: E2EConfig) -> None:
    logging.basicConfig(level=getattr(logging, cfg.log_level), format=LOG_FORMAT)
