"""Tests for the relationship graph builder."""

from __future__ import annotations

from typing import Any

from kubescout.execution import CancellationToken
from kubescout.graph import DanglingReason, EdgeType, GraphBuilder, RelationshipEdge
from kubescout.models.resources import ResourceKey
from kubescout.snapshot import Snapshot

# ---------------------------------------------------------------------------
# Helper factories
# ---------------------------------------------------------------------------


def _obj(
    kind: str,
    name: str,
    namespace: str = "default",
    labels: dict[str, str] | None = None,
    api_version: str = "v1",
    uid: str = "",
    owners: list[dict[str, Any]] | None = None,
    **fields: Any,
) -> dict[str, Any]:
    metadata: dict[str, Any] = {"name": name, "labels": labels or {}}
    if namespace:
        metadata["namespace"] = namespace
    if uid:
        metadata["uid"] = uid
    if owners:
        metadata["ownerReferences"] = owners
    return {"apiVersion": api_version, "kind": kind, "metadata": metadata, **fields}


def _deployment(name: str = "web", pod_spec: dict[str, Any] | None = None, **kwargs: Any) -> dict[str, Any]:
    spec = {"template": {"metadata": {"labels": {"app": name}}, "spec": pod_spec or {"containers": []}}}
    return _obj("Deployment", name, api_version="apps/v1", spec=spec, **kwargs)


def _key(kind: str, name: str, namespace: str = "default") -> ResourceKey:
    return ResourceKey(kind, namespace, name)


def _edge_set(result: Any) -> set[tuple[str, str, str]]:
    return {(str(e.source), str(e.target), e.edge_type.value) for e in result.edges}


# ---------------------------------------------------------------------------
# Ownership edges
# ---------------------------------------------------------------------------


class TestOwnsEdges:
    def test_owner_resolved_by_uid(self) -> None:
        snapshot = Snapshot(
            [
                _obj("ReplicaSet", "web-abc", uid="rs-1", api_version="apps/v1"),
                _obj("Pod", "web-abc-1", owners=[{"kind": "ReplicaSet", "name": "renamed", "uid": "rs-1"}]),
            ]
        )
        result = GraphBuilder().build(snapshot)
        assert _edge_set(result) == {("ReplicaSet/default/web-abc", "Pod/default/web-abc-1", "owns")}

    def test_owner_resolved_by_name(self) -> None:
        snapshot = Snapshot(
            [
                _obj("ReplicaSet", "web-abc", api_version="apps/v1"),
                _obj("Pod", "web-abc-1", owners=[{"kind": "ReplicaSet", "name": "web-abc"}]),
            ]
        )
        result = GraphBuilder().build(snapshot)
        assert result.inbound(_key("Pod", "web-abc-1"), EdgeType.OWNS)[0].source == _key("ReplicaSet", "web-abc")

    def test_cluster_scoped_owner(self) -> None:
        snapshot = Snapshot(
            [
                _obj("ClusterIssuer", "letsencrypt", namespace=""),
                _obj("Secret", "tls", owners=[{"kind": "ClusterIssuer", "name": "letsencrypt"}]),
            ]
        )
        result = GraphBuilder().build(snapshot)
        assert ("ClusterIssuer/letsencrypt", "Secret/default/tls", "owns") in _edge_set(result)

    def test_missing_owner_is_unresolved(self) -> None:
        snapshot = Snapshot([_obj("Pod", "orphan", owners=[{"kind": "ReplicaSet", "name": "gone", "uid": "x"}])])
        result = GraphBuilder().build(snapshot)
        assert result.edges == []
        (ref,) = result.unresolved_edges()
        assert ref.reason == DanglingReason.OWNER_NOT_FOUND
        assert ref.declared_by == _key("Pod", "orphan")
        assert ref.target == _key("ReplicaSet", "gone")


# ---------------------------------------------------------------------------
# Reference edges from pod specs
# ---------------------------------------------------------------------------


class TestPodSpecReferences:
    def test_volumes_env_and_pull_secrets(self) -> None:
        pod_spec = {
            "serviceAccountName": "web-sa",
            "imagePullSecrets": [{"name": "registry"}],
            "volumes": [
                {"name": "cfg", "configMap": {"name": "web-config"}},
                {"name": "creds", "secret": {"secretName": "web-secret"}},
                {"name": "data", "persistentVolumeClaim": {"claimName": "web-data"}},
            ],
            "containers": [
                {
                    "name": "app",
                    "env": [{"name": "PW", "valueFrom": {"secretKeyRef": {"name": "db-secret", "key": "pw"}}}],
                    "envFrom": [{"configMapRef": {"name": "env-config"}}],
                }
            ],
        }
        snapshot = Snapshot(
            [
                _deployment(pod_spec=pod_spec),
                _obj("ServiceAccount", "web-sa"),
                _obj("Secret", "registry"),
                _obj("ConfigMap", "web-config"),
                _obj("Secret", "web-secret"),
                _obj("PersistentVolumeClaim", "web-data"),
                _obj("Secret", "db-secret"),
                _obj("ConfigMap", "env-config"),
            ]
        )
        result = GraphBuilder().build(snapshot)
        source = "Deployment/default/web"
        assert _edge_set(result) == {
            (source, "ServiceAccount/default/web-sa", "references"),
            (source, "Secret/default/registry", "image-pull-secret"),
            (source, "ConfigMap/default/web-config", "mounts"),
            (source, "Secret/default/web-secret", "mounts"),
            (source, "PersistentVolumeClaim/default/web-data", "mounts"),
            (source, "Secret/default/db-secret", "references"),
            (source, "ConfigMap/default/env-config", "references"),
        }
        assert result.unresolved == []

    def test_cronjob_pod_spec_path(self) -> None:
        cronjob = _obj(
            "CronJob",
            "backup",
            api_version="batch/v1",
            spec={"jobTemplate": {"spec": {"template": {"spec": {"volumes": [{"secret": {"secretName": "s3"}}]}}}}},
        )
        result = GraphBuilder().build(Snapshot([cronjob, _obj("Secret", "s3")]))
        assert ("CronJob/default/backup", "Secret/default/s3", "mounts") in _edge_set(result)

    def test_projected_sources(self) -> None:
        pod = _obj(
            "Pod",
            "p",
            spec={"volumes": [{"projected": {"sources": [{"configMap": {"name": "a"}}, {"secret": {"name": "b"}}]}}]},
        )
        result = GraphBuilder().build(Snapshot([pod, _obj("ConfigMap", "a")]))
        assert ("Pod/default/p", "ConfigMap/default/a", "mounts") in _edge_set(result)
        (ref,) = result.unresolved
        assert ref.target == _key("Secret", "b")
        assert ref.reason == DanglingReason.SECRET_NOT_FOUND

    def test_references_resolve_in_source_namespace_only(self) -> None:
        pod = _obj("Pod", "p", namespace="a", spec={"volumes": [{"configMap": {"name": "shared"}}]})
        result = GraphBuilder().build(Snapshot([pod, _obj("ConfigMap", "shared", namespace="b")]))
        assert result.edges == []
        assert result.unresolved[0].target == ResourceKey("ConfigMap", "a", "shared")

    def test_optional_reference_is_not_unresolved(self) -> None:
        pod = _obj("Pod", "p", spec={"volumes": [{"secret": {"secretName": "maybe", "optional": True}}]})
        result = GraphBuilder().build(Snapshot([pod]))
        assert result.unresolved == []

    def test_default_service_account_is_implicit(self) -> None:
        pod = _obj("Pod", "p", spec={"serviceAccountName": "default"})
        result = GraphBuilder().build(Snapshot([pod]))
        assert result.unresolved == []

    def test_missing_service_account_is_unresolved(self) -> None:
        pod = _obj("Pod", "p", spec={"serviceAccountName": "ghost-sa"})
        (ref,) = GraphBuilder().build(Snapshot([pod])).unresolved
        assert ref.reason == DanglingReason.SERVICEACCOUNT_NOT_FOUND

    def test_duplicate_references_collapse(self) -> None:
        pod = _obj(
            "Pod",
            "p",
            spec={
                "containers": [
                    {"envFrom": [{"configMapRef": {"name": "cfg"}}]},
                    {"envFrom": [{"configMapRef": {"name": "cfg"}}]},
                ]
            },
        )
        result = GraphBuilder().build(Snapshot([pod, _obj("ConfigMap", "cfg")]))
        assert len(result.edges) == 1


# ---------------------------------------------------------------------------
# Other reference kinds
# ---------------------------------------------------------------------------


class TestOtherReferences:
    def test_hpa_scale_target(self) -> None:
        hpa = _obj(
            "HorizontalPodAutoscaler",
            "web",
            api_version="autoscaling/v2",
            spec={"scaleTargetRef": {"apiVersion": "apps/v1", "kind": "StatefulSet", "name": "db"}},
        )
        result = GraphBuilder().build(Snapshot([hpa, _obj("StatefulSet", "db", api_version="apps/v1")]))
        assert _edge_set(result) == {("HorizontalPodAutoscaler/default/web", "StatefulSet/default/db", "scale-target")}

    def test_hpa_missing_target(self) -> None:
        hpa = _obj("HorizontalPodAutoscaler", "web", spec={"scaleTargetRef": {"kind": "Deployment", "name": "gone"}})
        (ref,) = GraphBuilder().build(Snapshot([hpa])).unresolved
        assert ref.reason == DanglingReason.TARGET_NOT_FOUND
        assert ref.edge_type == EdgeType.SCALE_TARGET

    def test_ingress_backends_and_tls(self) -> None:
        ingress = _obj(
            "Ingress",
            "web",
            api_version="networking.k8s.io/v1",
            spec={
                "defaultBackend": {"service": {"name": "fallback"}},
                "tls": [{"secretName": "web-tls"}],
                "rules": [{"http": {"paths": [{"backend": {"service": {"name": "web", "port": {"number": 80}}}}]}}],
            },
        )
        snapshot = Snapshot([ingress, _obj("Service", "web"), _obj("Secret", "web-tls")])
        result = GraphBuilder().build(snapshot)
        assert _edge_set(result) == {
            ("Ingress/default/web", "Service/default/web", "backend"),
            ("Ingress/default/web", "Secret/default/web-tls", "tls-secret"),
        }
        (ref,) = result.unresolved
        assert ref.reason == DanglingReason.SERVICE_NOT_FOUND
        assert ref.target == _key("Service", "fallback")

    def test_service_account_secrets(self) -> None:
        sa = _obj("ServiceAccount", "builder", imagePullSecrets=[{"name": "pull"}], secrets=[{"name": "token"}])
        result = GraphBuilder().build(Snapshot([sa, _obj("Secret", "pull"), _obj("Secret", "token")]))
        assert _edge_set(result) == {
            ("ServiceAccount/default/builder", "Secret/default/pull", "image-pull-secret"),
            ("ServiceAccount/default/builder", "Secret/default/token", "references"),
        }


# ---------------------------------------------------------------------------
# Selector edges
# ---------------------------------------------------------------------------


class TestSelectorEdges:
    def test_service_selects_pods_in_namespace(self) -> None:
        snapshot = Snapshot(
            [
                _obj("Service", "web", spec={"selector": {"app": "web"}}),
                _obj("Pod", "web-1", labels={"app": "web"}),
                _obj("Pod", "web-2", labels={"app": "web", "extra": "x"}),
                _obj("Pod", "other-ns", namespace="prod", labels={"app": "web"}),
                _obj("Pod", "db-1", labels={"app": "db"}),
            ]
        )
        result = GraphBuilder().build(snapshot)
        targets = {e.target.name for e in result.outbound(_key("Service", "web"), EdgeType.SELECTS)}
        assert targets == {"web-1", "web-2"}
        (declaration,) = result.selectors
        assert declaration.matched == 2

    def test_headless_service_still_selects(self) -> None:
        service = _obj("Service", "db", spec={"clusterIP": "None", "selector": {"app": "db"}})
        result = GraphBuilder().build(Snapshot([service]))
        assert result.selectors[0].matched == 0

    def test_external_name_and_selectorless_services_skipped(self) -> None:
        snapshot = Snapshot(
            [
                _obj("Service", "ext", spec={"type": "ExternalName", "externalName": "db.example.com"}),
                _obj("Service", "manual", spec={"ports": [{"port": 80}]}),
            ]
        )
        assert GraphBuilder().build(snapshot).selectors == []

    def test_pdb_structured_selector(self) -> None:
        pdb = _obj(
            "PodDisruptionBudget",
            "db",
            api_version="policy/v1",
            spec={"selector": {"matchExpressions": [{"key": "app", "operator": "In", "values": ["db"]}]}},
        )
        snapshot = Snapshot([pdb, _obj("Pod", "db-0", labels={"app": "db"})])
        result = GraphBuilder().build(snapshot)
        assert ("PodDisruptionBudget/default/db", "Pod/default/db-0", "selects") in _edge_set(result)

    def test_empty_network_policy_selector_skipped(self) -> None:
        policy = _obj("NetworkPolicy", "deny-all", spec={"podSelector": {}})
        assert GraphBuilder().build(Snapshot([policy])).selectors == []

    def test_invalid_selector_becomes_warning(self) -> None:
        policy = _obj(
            "NetworkPolicy",
            "bad",
            spec={"podSelector": {"matchExpressions": [{"key": "a", "operator": "Sometimes"}]}},
        )
        result = GraphBuilder().build(Snapshot([policy]))
        assert [w.code for w in result.warnings] == ["invalid_selector"]
        assert result.warnings[0].subject == "NetworkPolicy/default/bad"


# ---------------------------------------------------------------------------
# Build mechanics
# ---------------------------------------------------------------------------


class TestBuild:
    def test_pooled_equals_inline(self) -> None:
        objects: list[dict[str, Any]] = []
        for i in range(30):
            objects.append(_obj("Service", f"svc-{i}", spec={"selector": {"app": f"app-{i % 5}"}}))
            objects.append(_obj("Pod", f"pod-{i}", labels={"app": f"app-{i % 5}"}))
        snapshot = Snapshot(objects)
        inline = GraphBuilder().build(snapshot)
        pooled = GraphBuilder(workers=4).build(snapshot)
        assert inline.edges == pooled.edges
        assert len(inline.edges) == 30 * 6

    def test_cancelled_build_is_partial(self) -> None:
        token = CancellationToken()
        token.cancel()
        result = GraphBuilder().build(Snapshot([_obj("Service", "s", spec={"selector": {"a": "b"}})]), token)
        assert result.partial is True
        assert result.edges == []

    def test_count_by_type_and_edge_identity(self) -> None:
        snapshot = Snapshot(
            [_obj("Pod", "p", spec={"volumes": [{"configMap": {"name": "c"}}]}), _obj("ConfigMap", "c")]
        )
        result = GraphBuilder().build(snapshot)
        assert result.count_by_type() == {EdgeType.MOUNTS: 1}
        edge = result.edges[0]
        assert edge == RelationshipEdge(edge.source, edge.target, EdgeType.MOUNTS, "anything")
        assert edge.source_field.endswith("volumes[*].configMap")
