"""Rendering of listings and cloud documents."""

import io
import json
from collections.abc import Callable
from typing import Any

import yaml
from rich import box
from rich.console import Console
from rich.table import Table

from cdediag.core.models import OutputFormat
from cdediag.interfaces.query_types import Listing

Row = Callable[[dict[str, Any]], list[str]]


def _get(obj: dict[str, Any], path: str, default: Any = "") -> Any:
    for part in path.split("."):
        if not isinstance(obj, dict) or part not in obj:
            return default
        obj = obj[part]
    return default if obj is None else obj


def _pod_row(item: dict[str, Any]) -> list[str]:
    statuses = _get(item, "status.containerStatuses", [])
    ready = sum(1 for s in statuses if s.get("ready"))
    restarts = sum(int(s.get("restartCount", 0)) for s in statuses)
    return [
        f"{ready}/{len(statuses)}",
        str(_get(item, "status.phase")),
        str(restarts),
        str(_get(item, "status.podIP")),
        str(_get(item, "spec.nodeName")),
    ]


def _replicas_row(item: dict[str, Any]) -> list[str]:
    desired = _get(item, "spec.replicas", _get(item, "status.desiredNumberScheduled", 0))
    ready = _get(item, "status.readyReplicas", _get(item, "status.numberReady", 0))
    return [f"{ready}/{desired}", "", "", "", ""]


def _service_row(item: dict[str, Any]) -> list[str]:
    ports = ",".join(
        f"{p.get('port')}/{p.get('protocol', 'TCP')}" for p in _get(item, "spec.ports", [])
    )
    return ["", str(_get(item, "spec.type")), "", str(_get(item, "spec.clusterIP")), ports]


def _job_row(item: dict[str, Any]) -> list[str]:
    succeeded = _get(item, "status.succeeded", 0)
    completions = _get(item, "spec.completions", 1)
    return [f"{succeeded}/{completions}", "", "", "", ""]


def _event_row(item: dict[str, Any]) -> list[str]:
    obj = _get(item, "involvedObject", {})
    return [
        str(_get(item, "type")),
        str(_get(item, "reason")),
        str(_get(item, "count")),
        f"{obj.get('kind', '')}/{obj.get('name', '')}",
        str(_get(item, "message")),
    ]


def _phase_row(item: dict[str, Any]) -> list[str]:
    return ["", str(_get(item, "status.phase")), "", "", ""]


def _blank_row(item: dict[str, Any]) -> list[str]:
    return ["", "", "", "", ""]


WIDE_COLUMNS: dict[str, tuple[list[str], Row]] = {
    "pods": (["READY", "STATUS", "RESTARTS", "IP", "NODE"], _pod_row),
    "deployments": (["READY", "", "", "", ""], _replicas_row),
    "statefulsets": (["READY", "", "", "", ""], _replicas_row),
    "daemonsets": (["READY", "", "", "", ""], _replicas_row),
    "replicasets": (["READY", "", "", "", ""], _replicas_row),
    "services": (["", "TYPE", "", "CLUSTER-IP", "PORTS"], _service_row),
    "jobs": (["COMPLETIONS", "", "", "", ""], _job_row),
    "events": (["TYPE", "REASON", "COUNT", "OBJECT", "MESSAGE"], _event_row),
    "persistentvolumeclaims": (["", "STATUS", "", "", ""], _phase_row),
}


def _render_wide(listing: Listing) -> str:
    if not listing.items:
        return f"No resources found in {listing.scope or 'any'} namespace."

    if listing.kind == "helmreleases":
        headers = ["NAME", "NAMESPACE", "REVISION", "STATUS", "UPDATED"]
        rows = [
            [str(i.get(k, "")) for k in ("name", "namespace", "revision", "status", "modifiedAt")]
            for i in listing.items
        ]
    else:
        columns, row = WIDE_COLUMNS.get(listing.kind, (["", "", "", "", ""], _blank_row))
        keep = [i for i, c in enumerate(columns) if c]
        headers = ["NAME"] + [columns[i] for i in keep] + ["CREATED"]
        rows = []
        for item in listing.items:
            values = row(item)
            rows.append(
                [str(_get(item, "metadata.name"))]
                + [values[i] for i in keep]
                + [str(_get(item, "metadata.creationTimestamp"))]
            )

    table = Table(box=box.SIMPLE_HEAD, show_edge=False, pad_edge=False)
    for header in headers:
        table.add_column(header, overflow="fold")
    for values in rows:
        table.add_row(*values)

    buffer = io.StringIO()
    Console(file=buffer, width=220, color_system=None, force_terminal=False).print(table)
    return "\n".join(line.rstrip() for line in buffer.getvalue().splitlines()).strip("\n")


def render_listing(listing: Listing, output_format: OutputFormat) -> str:
    """Render a listing as kubectl-style wide table, YAML or JSON."""
    if output_format == OutputFormat.JSON:
        return json.dumps({"kind": "List", "items": listing.items}, indent=2, default=str)
    if output_format == OutputFormat.YAML:
        return yaml.safe_dump(
            {"kind": "List", "items": listing.items}, sort_keys=False, default_flow_style=False
        ).rstrip("\n")
    return _render_wide(listing)


def render_document(document: dict[str, Any], output_format: OutputFormat) -> str:
    """Render a cloud API response; JSON when requested, YAML otherwise."""
    if output_format == OutputFormat.JSON:
        return json.dumps(document, indent=2, default=str)
    # Round-trip through JSON so datetimes become plain strings for safe_dump
    plain = json.loads(json.dumps(document, default=str))
    return yaml.safe_dump(plain, sort_keys=False, default_flow_style=False).rstrip("\n")
