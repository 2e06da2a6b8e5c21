"""Tests for the Collector orchestrator."""

import io
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ProfileNotFound
from kubernetes import client as k8s
from kubernetes.client.models import (
    V1Container,
    V1NamespaceList,
    V1ObjectMeta,
    V1Pod,
    V1PodList,
    V1PodSpec,
)

from cdediag.adapters.aws_adapter import AWSAdapter
from cdediag.adapters.k8s_adapter import KubernetesAdapter
from cdediag.clients.kubernetes_client import KubernetesClient
from cdediag.collection.orchestrator import Collector, _parse_log_location
from cdediag.core.config import CollectorConfig
from cdediag.core.exceptions import AuthError, ConfigurationError, QueryError
from cdediag.core.models import SectionKind
from cdediag.interfaces.query_types import Err, Ok


@pytest.fixture
def collector(collector_config, fake_cluster, fake_cloud, mock_credential_cache):
    return Collector(
        config=collector_config,
        cluster_client=fake_cluster,
        cloud_client_factory=lambda credentials: fake_cloud,
        credential_cache=mock_credential_cache,
    )


class TestStatus:
    """Tests for the status run."""

    def test_without_descriptor_skips_cloud_sections(self, collector, fake_cloud):
        report = collector.status()

        assert report.labels == [
            "helm::releases",
            "dex::pods",
            "dex::services",
            "monitoring::pods",
            "monitoring::services",
            "dex-app-1a2b::pods::instance",
            "dex-app-1a2b::pods::airflow",
            "dex-app-3c4d::pods::instance",
            "dex-app-3c4d::pods::airflow",
        ]
        assert not [label for label in report.labels if label.startswith("cloud::")]
        assert fake_cloud.calls == []

    def test_tenant_queries_use_both_selectors(self, collector, fake_cluster):
        collector.status()

        tenant_queries = [c for c in fake_cluster.calls if c[0] == "query" and c[1] == "dex-app-1a2b"]
        assert tenant_queries == [
            ("query", "dex-app-1a2b", "pods", "app.kubernetes.io/instance=dex-app-1a2b"),
            ("query", "dex-app-1a2b", "pods", "release=dex-app-1a2b"),
        ]

    def test_system_namespaces_are_queried_without_selector(self, collector, fake_cluster):
        collector.status()

        assert ("query", "dex", "services", None) in fake_cluster.calls
        assert not [c for c in fake_cluster.calls if c[0] == "query" and c[1] == "kube-system"]

    def test_failed_query_becomes_error_section(
        self, collector_config, cluster_client_class, fake_cloud, mock_credential_cache
    ):
        cluster = cluster_client_class(failing_queries={("dex", "pods")})
        collector = Collector(collector_config, cluster, lambda c: fake_cloud, mock_credential_cache)

        report = collector.status()

        errors = report.by_kind(SectionKind.ERROR)
        assert [s.label for s in errors] == ["dex::pods"]
        assert "403 Forbidden" in errors[0].body
        assert "monitoring::services" in report.labels

    def test_aws_sections_precede_cluster_sections(self, collector, descriptor_file):
        report = collector.status(descriptor_file)

        assert report.labels[:6] == [
            "cloud::eks",
            "cloud::rds",
            "cloud::efs",
            "cloud::elb",
            "cloud::log-location",
            "helm::releases",
        ]
        assert all(s.kind == SectionKind.CLOUD for s in report.sections[:5])

    def test_aws_queries_use_cluster_identity(self, collector, descriptor_file, fake_cloud):
        collector.status(descriptor_file)

        assert ("eks", "describe_cluster", {"name": "liftie-abc"}) in fake_cloud.calls
        assert (
            "rds",
            "describe_db_instances",
            {"DBInstanceIdentifier": "cluster-abc"},
        ) in fake_cloud.calls
        assert ("efs", "describe_file_systems", {"CreationToken": "cluster-abc"}) in fake_cloud.calls
        assert (
            "s3",
            "list_objects_v2",
            {"Bucket": "logs-bucket", "Prefix": "dex/cluster-abc", "MaxKeys": 100},
        ) in fake_cloud.calls

    def test_load_balancers_are_matched_by_cluster_tag(self, collector, descriptor_file):
        report = collector.status(descriptor_file)

        elb = next(s for s in report if s.label == "cloud::elb")
        assert "arn:lb/1" in elb.body
        assert "arn:lb/2" not in elb.body

    def test_load_balancer_pages_are_followed(
        self, collector_config, fake_cluster, cloud_client_class, mock_credential_cache
    ):
        pages = iter(
            [
                {"LoadBalancers": [{"LoadBalancerArn": "arn:lb/1"}], "NextMarker": "page-2"},
                {"LoadBalancers": [{"LoadBalancerArn": "arn:lb/3"}]},
            ]
        )

        class PagedCloud(cloud_client_class):
            def query_cloud_resource(self, service, operation, params=None):
                if operation == "describe_load_balancers":
                    self.calls.append((service, operation, dict(params or {})))
                    return Ok(next(pages))
                return super().query_cloud_resource(service, operation, params)

        cloud = PagedCloud(
            {
                ("elbv2", "describe_tags"): {
                    "TagDescriptions": [
                        {"ResourceArn": "arn:lb/3", "Tags": [{"Key": "cluster", "Value": "liftie-abc"}]}
                    ]
                }
            }
        )
        collector = Collector(collector_config, fake_cluster, lambda c: cloud, mock_credential_cache)
        result = collector._find_load_balancers(cloud, "liftie-abc")

        assert result.value == {"LoadBalancers": [{"LoadBalancerArn": "arn:lb/3"}]}
        assert ("elbv2", "describe_load_balancers", {"Marker": "page-2"}) in cloud.calls
        tag_calls = [c for c in cloud.calls if c[1] == "describe_tags"]
        assert tag_calls == [("elbv2", "describe_tags", {"ResourceArns": ["arn:lb/1", "arn:lb/3"]})]

    def test_failed_cloud_query_becomes_error_section(
        self, collector_config, fake_cluster, cloud_client_class, mock_credential_cache, descriptor_file
    ):
        cloud = cloud_client_class(
            {("rds", "describe_db_instances"): QueryError("DBInstanceNotFound: gone", "rds.describe_db_instances")}
        )
        collector = Collector(collector_config, fake_cluster, lambda c: cloud, mock_credential_cache)

        report = collector.status(descriptor_file)

        rds = next(s for s in report if s.label == "cloud::rds")
        assert rds.kind == SectionKind.ERROR
        assert rds.body == "rds.describe_db_instances: DBInstanceNotFound: gone"
        assert "cloud::efs" in report.labels

    def test_unsupported_platform_is_reported(self, collector, tmp_path, fake_cloud):
        descriptor = tmp_path / "service.json"
        descriptor.write_text('{"clusterId": "cluster-abc", "cloudPlatform": "AZURE"}')

        report = collector.status(descriptor)

        assert report.labels[0] == "cloud::azure"
        assert report.sections[0].kind == SectionKind.INFO
        assert fake_cloud.calls == []

    def test_unusable_cloud_profile_becomes_error_section(
        self, collector_config, fake_cluster, mock_credential_cache, descriptor_file
    ):
        collector_config.aws.profile = "no-such-profile-xyz"
        collector = Collector(
            collector_config,
            fake_cluster,
            lambda credentials: AWSAdapter.from_config(collector_config, credentials),
            mock_credential_cache,
        )

        with patch("boto3.Session", side_effect=ProfileNotFound(profile="no-such-profile-xyz")):
            report = collector.status(descriptor_file)

        assert report.labels[0] == "cloud::aws"
        assert report.sections[0].kind == SectionKind.ERROR
        assert "no-such-profile-xyz" in report.sections[0].body
        assert not [label for label in report.labels if label in ("cloud::eks", "cloud::rds")]
        assert "helm::releases" in report.labels
        assert "dex-app-3c4d::pods::airflow" in report.labels

    def test_session_is_ensured_for_configured_role(self, collector, mock_credential_cache):
        collector.config.aws.role_arn = "arn:aws:iam::123456789:role/Diag"

        collector.status()

        mock_credential_cache.ensure_valid_session.assert_called_once_with(
            "arn:aws:iam::123456789:role/Diag"
        )

    def test_auth_failure_is_fatal(self, collector, mock_credential_cache, fake_cluster):
        mock_credential_cache.ensure_valid_session.side_effect = AuthError("AccessDenied")

        with pytest.raises(AuthError):
            collector.status()

        assert fake_cluster.calls == []

    def test_missing_target_is_fatal(self, fake_cluster, fake_cloud, mock_credential_cache):
        collector = Collector(CollectorConfig(), fake_cluster, lambda c: fake_cloud, mock_credential_cache)

        with pytest.raises(ConfigurationError):
            collector.status()

        assert fake_cluster.calls == []


class TestLogs:
    """Tests for the logs run."""

    def test_stream_mode_orders_init_containers_first(self, collector):
        stream = io.StringIO()

        summary = collector.logs(stream=stream)

        headers = [line for line in stream.getvalue().splitlines() if line.startswith("==> ")]
        assert headers == [
            "==> dex/dex-api-0/init-db <==",
            "==> dex/dex-api-0/api <==",
            "==> dex-app-1a2b/livy-0/worker <==",
            "==> dex-app-1a2b/livy-0/sidecar <==",
        ]
        assert summary.units == 4
        assert summary.failures == 0

    def test_tenant_pods_use_instance_selector(self, collector, fake_cluster):
        collector.logs(stream=io.StringIO())

        pod_calls = [c for c in fake_cluster.calls if c[0] == "pods"]
        assert pod_calls == [
            ("pods", "dex", None),
            ("pods", "monitoring", None),
            ("pods", "dex-app-1a2b", "app.kubernetes.io/instance=dex-app-1a2b"),
            ("pods", "dex-app-3c4d", "app.kubernetes.io/instance=dex-app-3c4d"),
        ]

    def test_failed_container_does_not_stop_siblings(
        self, collector_config, cluster_client_class, fake_cluster, fake_cloud, mock_credential_cache, tmp_path
    ):
        cluster = cluster_client_class(
            namespaces=fake_cluster.namespaces,
            pods=fake_cluster.pods,
            failing_logs={("dex-app-1a2b", "livy-0", "worker")},
        )
        collector = Collector(collector_config, cluster, lambda c: fake_cloud, mock_credential_cache)

        summary = collector.logs(output_dir=tmp_path)

        worker = tmp_path / "dex-app-1a2b" / "livy-0_worker.log"
        sidecar = tmp_path / "dex-app-1a2b" / "livy-0_sidecar.log"
        assert worker.read_text().startswith("ERROR: read_namespaced_pod_log dex-app-1a2b/livy-0/worker")
        assert sidecar.read_text() == "log of sidecar\n"
        assert summary.failures == 1
        assert summary.failed_units == ["dex-app-1a2b/livy-0/worker"]
        assert len(summary.written) == 4

    def test_output_dir_layout(self, collector, tmp_path):
        collector.logs(output_dir=tmp_path)

        assert sorted(p.relative_to(tmp_path).as_posix() for p in tmp_path.rglob("*.log")) == [
            "dex-app-1a2b/livy-0_sidecar.log",
            "dex-app-1a2b/livy-0_worker.log",
            "dex/dex-api-0_api.log",
            "dex/dex-api-0_init-db.log",
        ]

    def test_pod_listing_failure_is_recorded(self, collector, fake_cluster, tmp_path):
        original = fake_cluster.list_pods

        def list_pods(scope, selector=None):
            if scope == "monitoring":
                return Err(QueryError("403 Forbidden", operation="list_namespaced_pod monitoring"))
            return original(scope, selector)

        with patch.object(fake_cluster, "list_pods", side_effect=list_pods):
            summary = collector.logs(output_dir=tmp_path)

        assert (tmp_path / "monitoring" / "_pods.log").read_text() == (
            "ERROR: list_namespaced_pod monitoring: 403 Forbidden"
        )
        assert "monitoring" in summary.failed_units
        assert summary.units == 4

    def test_unwritable_log_file_does_not_stop_siblings(self, collector, tmp_path):
        # a directory in place of the log file makes the write fail
        (tmp_path / "dex" / "dex-api-0_init-db.log").mkdir(parents=True)

        summary = collector.logs(output_dir=tmp_path)

        assert summary.units == 4
        assert summary.failures == 1
        assert summary.failed_units == ["dex/dex-api-0/init-db"]
        assert len(summary.written) == 3
        assert (tmp_path / "dex" / "dex-api-0_api.log").read_text() == "log of api\n"
        assert (tmp_path / "dex-app-1a2b" / "livy-0_sidecar.log").read_text() == "log of sidecar\n"

    def test_write_failure_of_failed_unit_is_counted_once(
        self, collector_config, cluster_client_class, fake_cluster, fake_cloud, mock_credential_cache, tmp_path
    ):
        cluster = cluster_client_class(
            namespaces=fake_cluster.namespaces,
            pods=fake_cluster.pods,
            failing_logs={("dex", "dex-api-0", "api")},
        )
        collector = Collector(collector_config, cluster, lambda c: fake_cloud, mock_credential_cache)
        (tmp_path / "dex" / "dex-api-0_api.log").mkdir(parents=True)

        summary = collector.logs(output_dir=tmp_path)

        assert summary.failures == 1
        assert summary.failed_units == ["dex/dex-api-0/api"]

    def test_undecodable_log_bytes_do_not_abort_run(self, collector_config, mock_credential_cache, tmp_path):
        with patch("kubernetes.config.new_client_from_config", return_value=k8s.ApiClient()):
            kube_client = KubernetesClient(kubeconfig_path="/tmp/kubeconfig", request_timeout=5)
        kube_client.core_v1 = MagicMock()
        kube_client.core_v1.list_namespace.return_value = V1NamespaceList(items=[])
        kube_client.core_v1.list_namespaced_pod.return_value = V1PodList(
            items=[
                V1Pod(
                    metadata=V1ObjectMeta(name="dex-api-0", namespace="dex"),
                    spec=V1PodSpec(containers=[V1Container(name="a"), V1Container(name="b")]),
                )
            ]
        )
        kube_client.core_v1.read_namespaced_pod_log.side_effect = [
            MagicMock(data=b"started \xff\n"),
            UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte"),
        ]
        collector_config.collection.system_namespaces = ["dex"]
        collector = Collector(
            collector_config, KubernetesAdapter(kube_client), MagicMock(), mock_credential_cache
        )

        summary = collector.logs(output_dir=tmp_path)

        assert summary.units == 2
        assert summary.failures == 1
        assert summary.failed_units == ["dex/dex-api-0/b"]
        assert (tmp_path / "dex" / "dex-api-0_a.log").read_text(encoding="utf-8") == "started \ufffd\n"
        assert (tmp_path / "dex" / "dex-api-0_b.log").read_text().startswith(
            "ERROR: read_namespaced_pod_log dex/dex-api-0/b: Undecodable response"
        )

    def test_missing_target_is_fatal(self, fake_cluster, fake_cloud):
        collector = Collector(CollectorConfig(), fake_cluster, lambda c: fake_cloud, MagicMock())

        with pytest.raises(ConfigurationError):
            collector.logs(stream=io.StringIO())


class TestFromConfig:
    def test_requires_connection_target(self):
        with pytest.raises(ConfigurationError, match="No connection target"):
            Collector.from_config(CollectorConfig())

    def test_wires_default_implementations(self, collector_config):
        with patch("cdediag.adapters.k8s_adapter.KubernetesAdapter.from_config") as mock_k8s, patch(
            "cdediag.utils.credential_cache.CredentialCache.from_config"
        ) as mock_cache:
            collector = Collector.from_config(collector_config)

        assert collector.cluster_client is mock_k8s.return_value
        assert collector.credential_cache is mock_cache.return_value


@pytest.mark.parametrize(
    ("location", "expected"),
    [
        ("s3a://logs-bucket/dex/cluster-abc", ("logs-bucket", "dex/cluster-abc")),
        ("s3://logs-bucket", ("logs-bucket", "")),
        ("hdfs://namenode/logs", ("", "")),
        ("", ("", "")),
    ],
)
def test_parse_log_location(location, expected):
    assert _parse_log_location(location) == expected
