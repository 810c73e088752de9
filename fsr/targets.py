from __future__ import annotations

import os

from .errors import ConfigurationError
from .remotes import ContractRemote, HttpRemote, RemoteSystem
from .settings import settings


def open_target(
    target: str,
    remote_url: str | None = None,
    rpc_url: str | None = None,
    deployments_dir: str | None = None,
    sender: str | None = None,
) -> RemoteSystem:
    """Build the RemoteSystem for a target identifier.

    An RPC url selects a contract target (``<deployments_dir>/<target>.json``);
    otherwise an HTTP remote url is required. Arguments fall back to Settings.
    """
    if not target:
        raise ConfigurationError("no target given (descriptor 'target' or --target)")

    rpc_url = rpc_url or settings.rpc_url
    if rpc_url:
        path = os.path.join(deployments_dir or settings.deployments_dir, f"{target}.json")
        return ContractRemote.from_deployment(
            rpc_url,
            path,
            sender=sender or settings.sender,
            timeout_s=settings.remote_timeout_s,
            receipt_timeout_s=settings.receipt_timeout_s,
        )

    remote_url = remote_url or settings.remote_url
    if remote_url:
        return HttpRemote(remote_url, target, timeout_s=settings.remote_timeout_s)

    raise ConfigurationError("no remote configured: set FSR_RPC_URL or FSR_REMOTE_URL")
