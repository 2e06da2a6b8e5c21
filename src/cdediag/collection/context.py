"""Cluster context resolution from a service descriptor."""

from pathlib import Path
from typing import Any

import yaml

from cdediag.core.exceptions import ConfigurationError
from cdediag.interfaces.cloud_types import ClusterContext
from cdediag.utils.logging import get_logger

logger = get_logger(__name__)

# ClusterContext field -> descriptor key
DESCRIPTOR_FIELDS = {
    "cluster_id": "clusterId",
    "provisioner_id": "provisionerId",
    "log_location": "logLocation",
    "cloud_platform": "cloudPlatform",
}


def _field(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    return "" if value is None else str(value)


def load_context(descriptor_path: str | Path | None = None) -> ClusterContext:
    """Load cluster metadata from a descriptor file.

    The descriptor is the JSON (or YAML) document returned by the service's
    describe call. Fields are read from the top level or from a ``service``
    wrapper. Missing fields resolve to empty strings.

    Args:
        descriptor_path: Path to the descriptor; None yields an empty context

    Returns:
        ClusterContext

    Raises:
        ConfigurationError: If the descriptor is unreadable or not a mapping
    """
    if descriptor_path is None:
        logger.debug("cluster_context_empty", reason="no_descriptor")
        return ClusterContext()

    path = Path(descriptor_path).expanduser()
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read cluster descriptor {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid cluster descriptor {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid cluster descriptor {path}: expected a mapping")

    if isinstance(data.get("service"), dict):
        data = data["service"]

    context = ClusterContext(
        **{name: _field(data, key) for name, key in DESCRIPTOR_FIELDS.items()}
    )
    logger.info(
        "cluster_context_loaded",
        cluster_id=context.cluster_id,
        provisioner_id=context.provisioner_id,
        cloud_platform=context.cloud_platform,
    )
    return context
