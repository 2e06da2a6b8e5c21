"""CDE Diagnostic Collector (cdediag).

Collect cluster, cloud-resource and virtual cluster state from a managed data engineering
service and package it into a single bundle for offline triage.
"""

__version__ = "0.1.0"
__author__ = "Platform Engineering Team"
__license__ = "Apache-2.0"
