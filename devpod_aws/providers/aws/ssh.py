"""AWS-specific SSH address resolution."""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)


def get_ssh_candidate_hosts(instance: dict[str, Any]) -> list[str]:
    """Return the addresses to try for SSH, in order of preference.

    The public address comes first so machines are reachable from outside
    the VPC; the private address covers callers inside the VPC or behind a
    VPN and instances launched without a public address.

    Parameters
    ----------
    instance : dict[str, Any]
        Normalized instance details with ``public_ip`` and ``private_ip``

    Returns
    -------
    list[str]
        Zero, one or two distinct addresses
    """
    hosts: list[str] = []
    for key in ("public_ip", "private_ip"):
        address = instance.get(key)
        if address and address not in hosts:
            hosts.append(address)

    logger.debug(
        "SSH candidates for instance %s: %s",
        instance.get("instance_id"),
        ", ".join(hosts) or "<none>",
    )
    return hosts
