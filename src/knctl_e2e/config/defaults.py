"""Fixed values shared by the runner and ingress discovery.

These mirror what a stock Knative-on-Istio install looks like. Anything a
suite may need to change per cluster is also exposed on ``E2EConfig``.
"""

from __future__ import annotations

KNCTL_BINARY = "knctl"
DEFAULT_NAMESPACE = "default"

# Namespace holding the Istio control plane and the ingress gateway services.
ISTIO_SYSTEM_NAMESPACE = "istio-system"

INGRESS_GATEWAY_LABELS: dict[str, str] = {
    "knative": "ingressgateway",
}

# Single-node local development cluster. Node status addresses there may not
# be reachable from the host, so its IP is asked for directly.
LOCAL_ENV_NODE_NAME = "minikube"
LOCAL_ENV_IP_COMMAND: list[str] = ["minikube", "ip"]

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


def label_selector(labels: dict[str, str]) -> str:
    """Render a label dict as a Kubernetes equality-based selector."""
    return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
