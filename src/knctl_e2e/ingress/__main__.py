"""Inspect ingress gateway services of the current cluster.

Usage:
    python -m knctl_e2e.ingress list
    python -m knctl_e2e.ingress preferred --port 80
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from knctl_e2e.config.bootstrap import configure_logging, load_e2e_config
from knctl_e2e.ingress.client import load_core_client
from knctl_e2e.ingress.services import (
    DiscoveryError,
    IngressServices,
    LocalEnvironment,
    NoIngressAddressError,
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m knctl_e2e.ingress")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("list", help="List ingress gateway services")
    preferred = sub.add_parser("preferred", help="Print the preferred ingress address")
    preferred.add_argument("--port", type=int, default=80, help="Logical service port")
    return parser


async def _list(ing_svcs: IngressServices) -> None:
    print("Name\tAddresses\tPorts\tCreated")
    for svc in await ing_svcs.list():
        addrs = ", ".join(await svc.addresses())
        ports = ", ".join(str(p) for p in svc.ports())
        created = svc.creation_time()
        print(f"{svc.name()}\t{addrs}\t{ports}\t{created.isoformat() if created else ''}")


async def _preferred(ing_svcs: IngressServices, port: int) -> None:
    address, mapped = await ing_svcs.preferred_address(port)
    print(f"{address}:{mapped}")


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    cfg = load_e2e_config()
    configure_logging(cfg)

    ing_svcs = IngressServices(
        load_core_client(cfg.kubeconfig),
        system_namespace=cfg.system_namespace,
        local_env=LocalEnvironment(cfg.local_env_node_name, tuple(cfg.local_ip_command)),
    )

    try:
        if args.command == "list":
            asyncio.run(_list(ing_svcs))
        else:
            asyncio.run(_preferred(ing_svcs, args.port))
    except (DiscoveryError, NoIngressAddressError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
