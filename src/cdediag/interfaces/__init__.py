"""Interface definitions for the collection core."""

from cdediag.interfaces.cloud_provider import CloudQueryClient
from cdediag.interfaces.cloud_types import ClusterContext, CredentialSet
from cdediag.interfaces.cluster_provider import ClusterQueryClient
from cdediag.interfaces.query_types import Err, Listing, Ok, PodContainers, Result

__all__ = [
    "CloudQueryClient",
    "ClusterContext",
    "ClusterQueryClient",
    "CredentialSet",
    "Err",
    "Listing",
    "Ok",
    "PodContainers",
    "Result",
]
