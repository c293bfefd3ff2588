"""Configuration models."""

from __future__ import annotations

import shlex

from pydantic import BaseModel, Field, field_validator

from knctl_e2e.config.defaults import (
    DEFAULT_NAMESPACE,
    ISTIO_SYSTEM_NAMESPACE,
    KNCTL_BINARY,
    LOCAL_ENV_IP_COMMAND,
    LOCAL_ENV_NODE_NAME,
)


class E2EConfig(BaseModel):
    """Settings for an end-to-end run, loaded from environment variables.

    Defaults target a local cluster with knctl on PATH.
    """

    namespace: str = Field(
        default=DEFAULT_NAMESPACE,
        description="Namespace appended to every knctl invocation as -n.",
    )
    knctl_binary: str = Field(
        default=KNCTL_BINARY,
        description="Name or path of the knctl executable under test.",
    )
    system_namespace: str = Field(
        default=ISTIO_SYSTEM_NAMESPACE,
        description="Namespace searched for ingress gateway services.",
    )
    local_env_node_name: str = Field(
        default=LOCAL_ENV_NODE_NAME,
        description="Node name identifying a single-node local dev cluster.",
    )
    local_ip_command: list[str] = Field(
        default_factory=lambda: list(LOCAL_ENV_IP_COMMAND),
        description="Command printing the local dev cluster's reachable IP.",
    )
    kubeconfig: str | None = Field(
        default=None,
        description="Explicit kubeconfig path. Unset means in-cluster, then ~/.kube/config.",
    )
    log_level: str = Field(default="INFO")

    @field_validator("local_ip_command", mode="before")
    @classmethod
    def split_command(cls, v: object) -> object:
        if isinstance(v, str):
            parts = shlex.split(v)
            if not parts:
                raise ValueError("local_ip_command must not be empty")
            return parts
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalise_log_level(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return v
