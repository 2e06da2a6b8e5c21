"""AWS client for STS and describe-style resource queries."""

from typing import Any, cast

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    ReadTimeoutError,
)

from cdediag.core.exceptions import AuthError, ConfigurationError, QueryError, QueryTimeoutError
from cdediag.interfaces.cloud_types import CredentialSet
from cdediag.utils.logging import get_logger

logger = get_logger(__name__)


class AWSClient:
    """AWS client for STS role assumption and generic service calls."""

    def __init__(
        self,
        region: str = "us-west-2",
        profile: str | None = None,
        session: boto3.Session | None = None,
        request_timeout: float = 60.0,
    ):
        """Initialize AWS client.

        Args:
            region: AWS region
            profile: AWS profile name (optional)
            session: Existing boto3 session (optional, overrides profile)
            request_timeout: Connect and read timeout for every call (seconds)

        Raises:
            ConfigurationError: If the session cannot be created (e.g. unknown profile)
        """
        self.region = region
        self.profile = profile

        # Create session
        try:
            if session:
                self.session = session
            elif profile:
                self.session = boto3.Session(profile_name=profile, region_name=region)
            else:
                self.session = boto3.Session(region_name=region)
        except BotoCoreError as e:
            logger.error("aws_session_failed", region=region, profile=profile, error=str(e))
            raise ConfigurationError(f"Cannot create AWS session: {e}") from e

        # No automatic retries: a failed call is reported, not repeated
        self.botocore_config = Config(
            connect_timeout=request_timeout,
            read_timeout=request_timeout,
            retries={"max_attempts": 1, "mode": "standard"},
        )
        self._clients: dict[str, Any] = {}

        logger.debug("aws_client_initialized", region=region, profile=profile)

    @classmethod
    def from_credentials(
        cls, credentials: CredentialSet, region: str = "us-west-2", request_timeout: float = 60.0
    ) -> "AWSClient":
        """Create AWSClient from a temporary credential set.

        Args:
            credentials: Credentials obtained from an AssumeRole exchange
            region: AWS region
            request_timeout: Connect and read timeout (seconds)

        Returns:
            New AWSClient using the temporary credentials
        """
        return cls(
            region=region,
            session=credentials.to_session(region),
            request_timeout=request_timeout,
        )

    def client(self, service: str) -> Any:
        """Get (and memoize) a boto3 service client."""
        if service not in self._clients:
            self._clients[service] = self.session.client(service, config=self.botocore_config)
        return self._clients[service]

    def assume_role(
        self, role_arn: str, session_name: str = "cdediag-session", duration_seconds: int = 3600
    ) -> dict[str, Any]:
        """Assume an IAM role using the long-lived credentials of this session.

        Args:
            role_arn: IAM role ARN to assume
            session_name: Role session name
            duration_seconds: Requested credential lifetime

        Returns:
            Raw AssumeRole response

        Raises:
            AuthError: If role assumption fails
        """
        try:
            logger.info("assuming_role", role_arn=role_arn, session_name=session_name)

            response = self.client("sts").assume_role(
                RoleArn=role_arn,
                RoleSessionName=session_name,
                DurationSeconds=duration_seconds,
            )

            logger.info("role_assumed_successfully", role_arn=role_arn)
            return cast(dict[str, Any], response)

        except ClientError as e:
            error_code = e.response["Error"]["Code"]
            logger.error("role_assumption_failed", role_arn=role_arn, error_code=error_code)
            raise AuthError(f"Failed to assume role {role_arn}: {error_code}") from e
        except BotoCoreError as e:
            logger.error("role_assumption_failed", role_arn=role_arn, error=str(e))
            raise AuthError(f"Failed to assume role {role_arn}: {e}") from e

    def call(self, service: str, operation: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Invoke a single AWS API operation.

        Args:
            service: boto3 service name (e.g. "eks")
            operation: Client method name (e.g. "describe_cluster")
            params: Keyword arguments for the operation

        Returns:
            Response document without ResponseMetadata

        Raises:
            QueryTimeoutError: If the call timed out
            QueryError: If the call failed
        """
        params = params or {}
        identity = f"{service}.{operation}"

        try:
            logger.debug("calling_aws_operation", operation=identity, params=params)
            method = getattr(self.client(service), operation)
            response = dict(method(**params))
            response.pop("ResponseMetadata", None)

            logger.info("aws_operation_completed", operation=identity)
            return response

        except (ConnectTimeoutError, ReadTimeoutError) as e:
            logger.error("aws_operation_timed_out", operation=identity, error=str(e))
            raise QueryTimeoutError(f"Timed out: {e}", operation=identity) from e
        except ClientError as e:
            error_code = e.response["Error"]["Code"]
            logger.error("aws_operation_failed", operation=identity, error_code=error_code)
            raise QueryError(
                f"{error_code}: {e.response['Error'].get('Message', '')}", operation=identity
            ) from e
        except (BotoCoreError, AttributeError) as e:
            logger.error("aws_operation_failed", operation=identity, error=str(e))
            raise QueryError(str(e), operation=identity) from e
