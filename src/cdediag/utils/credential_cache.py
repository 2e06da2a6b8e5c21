"""Temporary credential caching with expiration validation."""

from __future__ import annotations

import fcntl
import json
import os
import tempfile
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from cdediag.core.exceptions import AuthError, ConfigurationError
from cdediag.interfaces.cloud_types import CredentialSet
from cdediag.utils.logging import get_logger

if TYPE_CHECKING:
    from cdediag.clients.aws_client import AWSClient
    from cdediag.core.config import CollectorConfig

logger = get_logger(__name__)


def _json_default(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class CredentialCache:
    """Single-slot cache of an AssumeRole response.

    The cache file holds the raw AssumeRole response. A cached set is reused
    while its expiration is in the future; a missing, unparsable or expired
    cache triggers a fresh exchange that overwrites the slot.

    The read-validate-rotate sequence holds an advisory lock on a sidecar
    ``.lock`` file, so concurrent invocations on one host do not interleave.
    """

    def __init__(
        self,
        cache_path: str | Path,
        client_factory: Callable[[], AWSClient],
        session_name: str = "cdediag-session",
        duration_seconds: int = 3600,
    ):
        """Initialize credential cache.

        Args:
            cache_path: Path of the cache file
            client_factory: Builds the AWS client holding the long-lived credentials
            session_name: Role session name used for the exchange
            duration_seconds: Requested credential lifetime
        """
        self.cache_path = Path(cache_path).expanduser()
        self.lock_path = self.cache_path.with_name(self.cache_path.name + ".lock")
        self.client_factory = client_factory
        self.session_name = session_name
        self.duration_seconds = duration_seconds
        logger.debug("credential_cache_initialized", cache_path=str(self.cache_path))

    @classmethod
    def from_config(cls, config: CollectorConfig) -> CredentialCache:
        """Build a cache whose exchanges use the configured profile."""
        from cdediag.clients.aws_client import AWSClient

        def factory() -> AWSClient:
            return AWSClient(
                region=config.aws.region,
                profile=config.aws.profile,
                request_timeout=config.collection.request_timeout,
            )

        return cls(
            cache_path=config.aws.cache_path,
            client_factory=factory,
            session_name=config.aws.session_name,
            duration_seconds=config.aws.session_duration_seconds,
        )

    @contextmanager
    def _locked(self) -> Iterator[None]:
        try:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            lock_file = self.lock_path.open("a")
        except OSError as e:
            raise ConfigurationError(f"Cannot open credential cache lock {self.lock_path}: {e}") from e

        with lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _read_cached(self) -> CredentialSet | None:
        """Return the cached credential set, or None if absent or unparsable."""
        try:
            raw = self.cache_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("credential_cache_missing", cache_path=str(self.cache_path))
            return None
        except OSError as e:
            raise ConfigurationError(f"Cannot read credential cache {self.cache_path}: {e}") from e

        try:
            return CredentialSet.from_response(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("credential_cache_unparsable", cache_path=str(self.cache_path), error=str(e))
            return None

    def _write(self, response: dict[str, Any]) -> None:
        """Replace the cache slot atomically."""
        tmp_name: str | None = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=str(self.cache_path.parent), prefix=f".{self.cache_path.name}."
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(response, f, default=_json_default, indent=2)
            os.replace(tmp_name, self.cache_path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise ConfigurationError(f"Cannot write credential cache {self.cache_path}: {e}") from e

    def ensure_valid_session(self, role_arn: str | None) -> CredentialSet | None:
        """Return usable temporary credentials for a role.

        Args:
            role_arn: Role to assume; None or empty means ambient credentials are used as-is

        Returns:
            CredentialSet, or None when no role is configured

        Raises:
            AuthError: If the STS client cannot be built or the AssumeRole exchange fails
            ConfigurationError: If the cache file cannot be read or written
        """
        if not role_arn:
            logger.debug("authentication_skipped", reason="no_role_arn")
            return None

        with self._locked():
            cached = self._read_cached()
            if cached is not None and cached.is_valid():
                logger.info(
                    "session_reused",
                    role_arn=role_arn,
                    expires_in_minutes=round(
                        (cached.expiration - datetime.now(timezone.utc)).total_seconds() / 60, 1
                    ),
                )
                return cached

            if cached is not None:
                logger.info("session_expired", role_arn=role_arn, expiration=cached.expiration.isoformat())

            try:
                client = self.client_factory()
            except ConfigurationError as e:
                logger.error("role_assumption_failed", role_arn=role_arn, error=str(e))
                raise AuthError(f"Failed to assume role {role_arn}: {e}") from e

            response = client.assume_role(
                role_arn, session_name=self.session_name, duration_seconds=self.duration_seconds
            )
            try:
                credentials = CredentialSet.from_response(response)
            except (ValueError, KeyError, TypeError) as e:
                raise AuthError(f"Malformed AssumeRole response for {role_arn}: {e}") from e

            self._write(response)
            logger.info(
                "session_created",
                role_arn=role_arn,
                expiration=credentials.expiration.isoformat(),
            )
            return credentials

    def clear(self) -> None:
        """Remove the cached session, forcing the next call to re-authenticate."""
        with self._locked():
            try:
                self.cache_path.unlink()
                logger.info("credential_cache_cleared", cache_path=str(self.cache_path))
            except FileNotFoundError:
                pass
