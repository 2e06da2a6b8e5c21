"""Data types for the cloud side of collection."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import boto3


@dataclass(frozen=True)
class CredentialSet:
    """Temporary AWS credentials obtained through an AssumeRole exchange."""

    access_key_id: str
    secret_access_key: str
    session_token: str
    expiration: datetime

    def is_valid(self, now: datetime | None = None) -> bool:
        """Check whether the credentials are still usable.

        A credential set is usable iff its expiration is strictly after now.
        """
        now = now or datetime.now(timezone.utc)
        return self.expiration > now

    def to_session(self, region: str) -> boto3.Session:
        """Build a boto3 session from these credentials."""
        return boto3.Session(
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            aws_session_token=self.session_token,
            region_name=region,
        )

    @classmethod
    def from_response(cls, response: dict[str, Any]) -> "CredentialSet":
        """Extract credentials from a raw (or cached) AssumeRole response.

        Args:
            response: Mapping with a ``Credentials`` block

        Returns:
            CredentialSet

        Raises:
            KeyError: If a required field is missing
            ValueError: If the expiration cannot be parsed
        """
        credentials = response["Credentials"]
        expiration = credentials["Expiration"]
        if isinstance(expiration, str):
            expiration = datetime.fromisoformat(expiration.replace("Z", "+00:00"))
        if not isinstance(expiration, datetime):
            raise ValueError(f"Invalid expiration: {expiration!r}")
        if expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=timezone.utc)

        return cls(
            access_key_id=credentials["AccessKeyId"],
            secret_access_key=credentials["SecretAccessKey"],
            session_token=credentials["SessionToken"],
            expiration=expiration,
        )


@dataclass(frozen=True)
class ClusterContext:
    """Cluster metadata used to parameterize cloud queries.

    Every field may be empty; an empty ``cluster_id`` means cloud collection is skipped.
    """

    cluster_id: str = ""
    provisioner_id: str = ""
    log_location: str = ""
    cloud_platform: str = ""

    @property
    def is_empty(self) -> bool:
        """True when there is no cluster to describe."""
        return not self.cluster_id
