"""Cluster client construction."""

from __future__ import annotations

import logging

from kubernetes import client, config as k8s_config

logger = logging.getLogger(__name__)


def load_core_client(kubeconfig: str | None = None) -> client.CoreV1Api:
    """Return a CoreV1Api for *kubeconfig*, or for the ambient cluster.

    Without an explicit path, in-cluster credentials are tried first and the
    default kubeconfig is the fallback.
    """
    if kubeconfig:
        k8s_config.load_kube_config(config_file=kubeconfig)
    else:
        try:
            k8s_config.load_incluster_config()
        except k8s_config.ConfigException:
            logger.debug("Not running in-cluster, loading default kubeconfig")
            k8s_config.load_kube_config()
    return client.CoreV1Api()
