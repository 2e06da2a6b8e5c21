"""Bundle packaging: status report plus logs, archived as one tarball."""

from __future__ import annotations

import shutil
import tarfile
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from cdediag.core.exceptions import BundleError
from cdediag.core.models import SectionKind
from cdediag.utils.logging import get_logger, log_operation

if TYPE_CHECKING:
    from cdediag.collection.orchestrator import Collector

logger = get_logger(__name__)

BUNDLE_PREFIX = "cdediag"
STATUS_FILE = "status.out"
LOGS_DIR = "logs"


class BundlePackager:
    """Run status and logs into a fresh directory and archive it.

    Cleanup contract:
    - success: ``<name>.tar.gz`` exists and the working directory is removed
    - archive failure: partial archive removed, working directory kept
    - removal failure: archive kept, BundleError raised
    """

    def __init__(self, collector: Collector):
        self.collector = collector

    @staticmethod
    def _create_workdir(destination: Path, now: datetime | None = None) -> Path:
        """Create a uniquely named, timestamped working directory."""
        stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d-%H%M%S")
        base = f"{BUNDLE_PREFIX}-{stamp}"
        try:
            destination.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BundleError(f"Cannot create destination {destination}: {e}") from e

        suffix = 0
        while True:
            name = base if suffix == 0 else f"{base}-{suffix}"
            workdir = destination / name
            if not (destination / f"{name}.tar.gz").exists():
                try:
                    workdir.mkdir()
                    return workdir
                except FileExistsError:
                    pass
                except OSError as e:
                    raise BundleError(f"Cannot create working directory {workdir}: {e}") from e
            suffix += 1

    def collect_bundle(
        self, destination: str | Path, descriptor_path: str | Path | None = None
    ) -> Path:
        """Collect status and logs and archive them.

        Args:
            destination: Directory receiving the archive
            descriptor_path: Optional cluster descriptor for cloud sections

        Returns:
            Path of ``<bundle-name>.tar.gz``

        Raises:
            BundleError: If writing, archiving or cleanup fails
            ConfigurationError: If the collector is not configured with a connection target
            AuthError: If the credential exchange fails
        """
        destination = Path(destination).expanduser()
        workdir = self._create_workdir(destination)
        log_operation(logger, "bundle_started", workdir=str(workdir))

        report = self.collector.status(descriptor_path)
        summary = self.collector.logs(output_dir=workdir / LOGS_DIR)

        report.add(
            "bundle::diagnostics",
            SectionKind.INFO,
            "\n".join(
                [
                    f"authentication: {'assumed-role' if self.collector.credentials else 'ambient'}",
                    f"sections: {len(report)}",
                    f"error_sections: {len(report.by_kind(SectionKind.ERROR))}",
                    f"log_units: {summary.units}",
                    f"log_failures: {summary.failures}",
                ]
                + [f"failed: {unit}" for unit in summary.failed_units]
            ),
        )
        try:
            (workdir / STATUS_FILE).write_text(report.render())
        except OSError as e:
            raise BundleError(f"Cannot write {STATUS_FILE}: {e}") from e

        archive = self.archive(workdir)
        self.remove_workdir(workdir)

        log_operation(logger, "bundle_completed", archive=str(archive))
        return archive

    @staticmethod
    def archive(workdir: Path) -> Path:
        """Compress a working directory into a sibling ``.tar.gz``.

        Raises:
            BundleError: If archiving fails; the partial archive is removed
        """
        archive = workdir.with_name(f"{workdir.name}.tar.gz")
        logger.info("creating_archive", archive=str(archive))
        try:
            with tarfile.open(archive, "w:gz") as tar:
                tar.add(workdir, arcname=workdir.name)
        except (OSError, tarfile.TarError) as e:
            logger.error("archive_failed", archive=str(archive), error=str(e))
            archive.unlink(missing_ok=True)
            raise BundleError(f"Failed to create archive {archive}: {e}") from e
        return archive

    @staticmethod
    def remove_workdir(workdir: Path) -> None:
        """Delete the uncompressed working directory.

        Raises:
            BundleError: If removal fails
        """
        try:
            shutil.rmtree(workdir)
        except OSError as e:
            logger.error("workdir_removal_failed", workdir=str(workdir), error=str(e))
            raise BundleError(f"Failed to remove working directory {workdir}: {e}") from e
