"""Ingress gateway discovery over LoadBalancer and NodePort services.

``IngressServices.list()`` classifies every service labelled
``knative=ingressgateway`` in the Istio system namespace into one of two
variants:

  - ``IngressServiceLoadBalancer``: addresses come from the load balancer's
    ingress points and ports are used as-is.
  - ``IngressServiceNodePort``: addresses come from the cluster's nodes and
    each logical port maps to its node port.

``preferred_address()`` picks the first variant, in listing order, that has
both an address and a mapping for the requested port.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, NamedTuple, TypeVar, Union

from kubernetes.client import V1Node, V1Service
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError

from knctl_e2e.config.defaults import (
    INGRESS_GATEWAY_LABELS,
    ISTIO_SYSTEM_NAMESPACE,
    LOCAL_ENV_IP_COMMAND,
    LOCAL_ENV_NODE_NAME,
    label_selector,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Node address types reachable from outside the cluster. InternalIP is left
# out since it may only be routable inside the cluster network.
_EXTERNAL_NODE_ADDRESS_TYPES = frozenset({"Hostname", "ExternalIP", "ExternalDNS"})

_CLIENT_ERRORS = (ApiException, HTTPError)


class DiscoveryError(RuntimeError):
    """Listing ingress gateway services failed."""


class NoIngressAddressError(RuntimeError):
    """No ingress service exposes both an address and the requested port."""


class ServiceKind(str, Enum):
    LOAD_BALANCER = "LoadBalancer"
    NODE_PORT = "NodePort"


class IngressAddress(NamedTuple):
    address: str
    port: str


@dataclass(frozen=True)
class LocalEnvironment:
    """Single-node dev cluster whose IP is fetched with a command."""

    node_name: str = LOCAL_ENV_NODE_NAME
    ip_command: tuple[str, ...] = tuple(LOCAL_ENV_IP_COMMAND)


async def _in_executor(fn: Callable[[], T]) -> T:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, fn)


def _parse_ip(text: str) -> str | None:
    out = text.strip()
    try:
        ipaddress.ip_address(out)
    except ValueError:
        return None
    return out


async def _local_environment_ip(command: tuple[str, ...]) -> str | None:
    """Run *command* and return its output if it is a single IP literal."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.warning("Could not run %s: %s", " ".join(command), e)
        return None
    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        logger.warning(
            "%s failed (rc=%s): %s",
            " ".join(command), proc.returncode, stderr.decode(errors="replace").strip(),
        )
        return None
    ip = _parse_ip(stdout.decode(errors="replace"))
    if ip is None:
        logger.debug("%s did not print an IP address", " ".join(command))
    return ip


def _service_ports(svc: V1Service) -> list[Any]:
    return list(svc.spec.ports or [])


@dataclass
class IngressServiceLoadBalancer:
    service: V1Service
    kind: ServiceKind = field(default=ServiceKind.LOAD_BALANCER, init=False)

    def name(self) -> str:
        return self.service.metadata.name

    def creation_time(self) -> datetime | None:
        return self.service.metadata.creation_timestamp

    async def addresses(self) -> list[str]:
        """IPs and hostnames of the load balancer's ingress points.

        Empty while the load balancer is still being provisioned.
        """
        addrs: list[str] = []
        status = self.service.status
        lb = status.load_balancer if status else None
        for ing in (lb.ingress if lb else None) or []:
            if ing.ip:
                addrs.append(ing.ip)
            if ing.hostname:
                addrs.append(ing.hostname)
        return addrs

    def ports(self) -> list[int]:
        return [p.port for p in _service_ports(self.service)]

    def mapped_port(self, port: int) -> int:
        # Load balancers expose the logical port unchanged.
        for p in _service_ports(self.service):
            if p.port == port:
                return port
        return 0


@dataclass
class IngressServiceNodePort:
    core_client: Any
    service: V1Service
    local_env: LocalEnvironment = field(default_factory=LocalEnvironment)
    kind: ServiceKind = field(default=ServiceKind.NODE_PORT, init=False)

    def name(self) -> str:
        return self.service.metadata.name

    def creation_time(self) -> datetime | None:
        return self.service.metadata.creation_timestamp

    async def addresses(self) -> list[str]:
        """Externally reachable node addresses.

        Failures are logged and yield an empty list rather than raising, so
        callers see them as "no address" through preferred_address().
        """
        try:
            nodes = await _in_executor(self.core_client.list_node)
        except Exception as e:
            # TODO propagate once callers can tell "no nodes" from "API down".
            logger.warning("Listing nodes for %s failed: %s", self.name(), e)
            return []

        items: list[V1Node] = list(nodes.items or [])

        if len(items) == 1 and items[0].metadata.name == self.local_env.node_name:
            ip = await _local_environment_ip(self.local_env.ip_command)
            return [ip] if ip else []

        addrs: list[str] = []
        for node in items:
            status = node.status
            for addr in (status.addresses if status else None) or []:
                if addr.type in _EXTERNAL_NODE_ADDRESS_TYPES:
                    addrs.append(addr.address)
        return addrs

    def ports(self) -> list[int]:
        return [p.node_port or 0 for p in _service_ports(self.service)]

    def mapped_port(self, port: int) -> int:
        for p in _service_ports(self.service):
            if p.port == port:
                return p.node_port or 0
        return 0


IngressService = Union[IngressServiceLoadBalancer, IngressServiceNodePort]


class IngressServices:
    """Finds ingress gateway services through a CoreV1Api-like client.

    The client needs ``list_namespaced_service(namespace, label_selector=...)``
    and ``list_node()``. Its blocking calls run in the default executor.
    """

    def __init__(
        self,
        core_client: Any,
        *,
        system_namespace: str = ISTIO_SYSTEM_NAMESPACE,
        local_env: LocalEnvironment | None = None,
    ) -> None:
        self._core_client = core_client
        self._system_namespace = system_namespace
        self._local_env = local_env or LocalEnvironment()

    async def list(self) -> list[IngressService]:
        selector = label_selector(INGRESS_GATEWAY_LABELS)
        try:
            services = await _in_executor(
                lambda: self._core_client.list_namespaced_service(
                    self._system_namespace, label_selector=selector,
                )
            )
        except _CLIENT_ERRORS as e:
            raise DiscoveryError(f"Listing services in istio namespace: {e}") from e

        ing_svcs: list[IngressService] = []
        for svc in services.items or []:
            svc_type = svc.spec.type if svc.spec else None
            if svc_type == ServiceKind.LOAD_BALANCER.value:
                ing_svcs.append(IngressServiceLoadBalancer(svc))
            elif svc_type == ServiceKind.NODE_PORT.value:
                ing_svcs.append(
                    IngressServiceNodePort(self._core_client, svc, self._local_env)
                )
            else:
                # ClusterIP and ExternalName have no externally reachable address.
                logger.debug("Skipping ingress service %s of type %s", svc.metadata.name, svc_type)

        return ing_svcs

    async def preferred_address(self, port: int) -> IngressAddress:
        """Return the first ingress (address, port) pair reachable for *port*."""
        for svc in await self.list():
            mapped = svc.mapped_port(port)
            if mapped == 0:
                continue
            addrs = await svc.addresses()
            if addrs:
                logger.debug("Using %s ingress %s at %s:%d", svc.kind.value, svc.name(), addrs[0], mapped)
                return IngressAddress(addrs[0], str(mapped))

        raise NoIngressAddressError("Expected to find at least one ingress address")
