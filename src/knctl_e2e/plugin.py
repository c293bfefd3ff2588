"""pytest plugin wiring config, logging and shared fixtures for e2e suites.

Enable from a suite's root conftest.py:

    pytest_plugins = ["knctl_e2e.plugin"]
"""

from __future__ import annotations

import pytest

from knctl_e2e.config.bootstrap import configure_logging, load_e2e_config
from knctl_e2e.ingress.client import load_core_client
from knctl_e2e.ingress.services import IngressServices, LocalEnvironment
from knctl_e2e.models.config import E2EConfig
from knctl_e2e.runner.knctl import Knctl


def pytest_configure(config: pytest.Config) -> None:
    configure_logging(load_e2e_config())


@pytest.fixture(scope="session")
def e2e_config() -> E2EConfig:
    return load_e2e_config()


@pytest.fixture(scope="session")
def knctl(e2e_config: E2EConfig) -> Knctl:
    """Knctl bound to the suite's namespace."""
    return Knctl(e2e_config.namespace, binary=e2e_config.knctl_binary)


@pytest.fixture(scope="session")
def core_client(e2e_config: E2EConfig):
    """CoreV1Api for the target cluster. Only built when a test asks for it."""
    return load_core_client(e2e_config.kubeconfig)


@pytest.fixture(scope="session")
def ingress_services(core_client, e2e_config: E2EConfig) -> IngressServices:
    return IngressServices(
        core_client,
        system_namespace=e2e_config.system_namespace,
        local_env=LocalEnvironment(
            node_name=e2e_config.local_env_node_name,
            ip_command=tuple(e2e_config.local_ip_command),
        ),
    )
