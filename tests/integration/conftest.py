"""Shared fixtures for kubescout integration tests.

Provides a realistic multi-owner snapshot (Flux, Helm, Argo CD, ConfigHub and
native controllers) seeded with known problems, plus engines wired with the
built-in catalog, so integration tests can exercise the full pipeline without
touching a real cluster.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from kubescout.engine import AnalysisEngine, AnalysisResult
from kubescout.models.config import EngineConfig, KubeScoutConfig
from kubescout.snapshot import Snapshot

# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------

_NOW = datetime.now(UTC)
_2H_AGO = (_NOW - timedelta(hours=2)).isoformat()
_1D_AGO = (_NOW - timedelta(days=1)).isoformat()

FLUX_LABELS = {
    "kustomize.toolkit.fluxcd.io/name": "apps",
    "kustomize.toolkit.fluxcd.io/namespace": "flux-system",
}


# ---------------------------------------------------------------------------
# Object factories
# ---------------------------------------------------------------------------


def make_object(
    kind: str,
    name: str,
    namespace: str = "prod",
    api_version: str = "v1",
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
    **fields: Any,
) -> dict[str, Any]:
    """Create a serialized Kubernetes object with sensible defaults."""
    metadata: dict[str, Any] = {"name": name, "labels": labels or {}, "annotations": annotations or {}}
    if namespace:
        metadata["namespace"] = namespace
    return {"apiVersion": api_version, "kind": kind, "metadata": metadata, **fields}


def make_deployment(
    name: str,
    image: str,
    namespace: str = "prod",
    labels: dict[str, str] | None = None,
    replicas: int = 2,
    **pod_spec: Any,
) -> dict[str, Any]:
    container = {"name": name, "image": image, "resources": {"limits": {"cpu": "500m", "memory": "256Mi"}}}
    return make_object(
        "Deployment",
        name,
        namespace,
        "apps/v1",
        labels={"app": name, **(labels or {})},
        spec={
            "replicas": replicas,
            "selector": {"matchLabels": {"app": name}},
            "template": {
                "metadata": {"labels": {"app": name}},
                "spec": {"containers": [container], **pod_spec},
            },
        },
        status={"replicas": replicas, "readyReplicas": replicas},
    )


def with_last_applied(obj: dict[str, Any], desired: dict[str, Any]) -> dict[str, Any]:
    obj["metadata"]["annotations"]["kubectl.kubernetes.io/last-applied-configuration"] = json.dumps(desired)
    return obj


def _podinfo_objects() -> list[dict[str, Any]]:
    """Flux-managed podinfo: Deployment -> ReplicaSet -> Pod, fronted by a Service."""
    deployment = make_deployment("podinfo", "ghcr.io/stefanprodan/podinfo:6.5.0", labels=FLUX_LABELS)
    deployment["metadata"]["uid"] = "uid-deploy-podinfo"
    desired = make_deployment("podinfo", "ghcr.io/stefanprodan/podinfo:6.5.0", labels=FLUX_LABELS)
    desired.pop("status")
    desired["spec"]["replicas"] = 3
    with_last_applied(deployment, desired)

    replicaset = make_object(
        "ReplicaSet",
        "podinfo-7d9f",
        api_version="apps/v1",
        labels={"app": "podinfo"},
        spec={"replicas": 2},
    )
    replicaset["metadata"]["uid"] = "uid-rs-podinfo"
    replicaset["metadata"]["ownerReferences"] = [
        {"apiVersion": "apps/v1", "kind": "Deployment", "name": "podinfo", "uid": "uid-deploy-podinfo"}
    ]

    pod = make_object(
        "Pod",
        "podinfo-7d9f-x2kj",
        labels={"app": "podinfo"},
        spec={
            "containers": [
                {
                    "name": "podinfo",
                    "image": "ghcr.io/stefanprodan/podinfo:6.5.0",
                    "envFrom": [{"configMapRef": {"name": "podinfo-env"}}],
                }
            ],
            "volumes": [{"name": "tls", "secret": {"secretName": "podinfo-tls"}}],
        },
        status={"phase": "Running"},
    )
    pod["metadata"]["ownerReferences"] = [
        {"apiVersion": "apps/v1", "kind": "ReplicaSet", "name": "podinfo-7d9f", "uid": "uid-rs-podinfo"}
    ]

    return [
        deployment,
        replicaset,
        pod,
        make_object("Service", "podinfo", labels=FLUX_LABELS, spec={"selector": {"app": "podinfo"}}),
        make_object("Secret", "podinfo-tls", labels=FLUX_LABELS, type="kubernetes.io/tls"),
    ]


def _flux_objects() -> list[dict[str, Any]]:
    ready = {"type": "Ready", "status": "True", "reason": "ReconciliationSucceeded", "lastTransitionTime": _1D_AGO}
    failing = {
        "type": "Ready",
        "status": "False",
        "reason": "UpgradeFailed",
        "message": "Helm upgrade failed: context deadline exceeded",
        "lastTransitionTime": _2H_AGO,
    }
    return [
        make_object(
            "Kustomization",
            "apps",
            "flux-system",
            "kustomize.toolkit.fluxcd.io/v1",
            spec={"interval": "10m", "timeout": "5m", "prune": True, "path": "./apps"},
            status={"conditions": [ready]},
        ),
        make_object(
            "HelmRelease",
            "cache",
            "flux-system",
            "helm.toolkit.fluxcd.io/v2",
            spec={"interval": "5m", "chart": {"spec": {"chart": "redis", "version": "18.6.1"}}},
            status={"conditions": [failing]},
        ),
    ]


def _other_owner_objects() -> list[dict[str, Any]]:
    return [
        # Helm-installed redis without a memory ceiling.
        make_deployment(
            "cache",
            "docker.io/bitnami/redis:7.2",
            labels={"app.kubernetes.io/managed-by": "Helm", "app.kubernetes.io/instance": "cache"},
            replicas=1,
        ),
        # Argo CD tracked Service whose pods are gone.
        make_object(
            "Service",
            "ghost",
            annotations={"argocd.argoproj.io/tracking-id": "guestbook:/Service:prod/ghost"},
            spec={"selector": {"app": "ghost"}},
        ),
        make_object(
            "Application",
            "guestbook",
            "argocd",
            "argoproj.io/v1alpha1",
            spec={"project": "default"},
            status={
                "sync": {"status": "OutOfSync"},
                "operationState": {"phase": "Succeeded", "startedAt": _1D_AGO},
            },
        ),
        make_object(
            "ConfigMap",
            "settings",
            "staging",
            labels={"confighub.com/UnitSlug": "settings", **FLUX_LABELS},
            annotations={"confighub.com/SpaceName": "staging-space"},
            data={"LOG_LEVEL": "info"},
        ),
        make_object(
            "PersistentVolumeClaim",
            "old-data",
            spec={"resources": {"requests": {"storage": "10Gi"}}},
            status={"phase": "Bound"},
        ),
        make_object("Namespace", "prod", namespace=""),
    ]


def cluster_objects() -> list[dict[str, Any]]:
    """Every object of the shared test cluster."""
    return _podinfo_objects() + _flux_objects() + _other_owner_objects()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def cluster_snapshot() -> Snapshot:
    return Snapshot(cluster_objects())


@pytest.fixture()
def kubescout_config() -> KubeScoutConfig:
    """Default config with a small worker pool for integration tests."""
    return KubeScoutConfig(cluster_name="test-cluster", engine=EngineConfig(workers=4))


@pytest.fixture()
def engine(kubescout_config: KubeScoutConfig) -> AnalysisEngine:
    return AnalysisEngine(kubescout_config)


@pytest.fixture()
def analysis(engine: AnalysisEngine, cluster_snapshot: Snapshot) -> AnalysisResult:
    return engine.analyze(cluster_snapshot)
