"""Adapter implementations for external services."""

from cdediag.adapters.aws_adapter import AWSAdapter
from cdediag.adapters.k8s_adapter import KubernetesAdapter

__all__ = [
    "AWSAdapter",
    "KubernetesAdapter",
]
