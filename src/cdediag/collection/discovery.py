"""Virtual cluster (tenant) namespace discovery."""

import re

from cdediag.interfaces.cluster_provider import ClusterQueryClient
from cdediag.interfaces.query_types import Err
from cdediag.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TENANT_PATTERN = r"^dex-app-[a-z0-9]+$"


def match_tenants(namespaces: list[str], pattern: str = DEFAULT_TENANT_PATTERN) -> list[str]:
    """Filter namespace names down to tenant namespaces, keeping listing order."""
    regex = re.compile(pattern)
    tenants: list[str] = []
    for name in namespaces:
        if regex.fullmatch(name) and name not in tenants:
            tenants.append(name)
    return tenants


def discover_tenants(
    client: ClusterQueryClient, pattern: str = DEFAULT_TENANT_PATTERN
) -> list[str]:
    """Discover tenant namespaces from the live namespace listing.

    Never fails: a listing error degrades to no tenants.

    Args:
        client: Cluster query client
        pattern: Tenant naming pattern

    Returns:
        Tenant namespace names in listing order
    """
    result = client.list_namespaces()
    if isinstance(result, Err):
        logger.warning("tenant_discovery_failed", error=result.message)
        return []

    tenants = match_tenants(result.value, pattern)
    logger.info("tenants_discovered", count=len(tenants), tenants=tenants)
    return tenants
