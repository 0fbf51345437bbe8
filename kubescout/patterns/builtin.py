"""Built-in pattern catalog.

Plain rule documents, validated by the same parser as user-supplied rules.
"""

from __future__ import annotations

import functools
from datetime import timedelta
from typing import Any

from kubescout.patterns.schema import DEFAULT_STUCK_THRESHOLD, Rule, parse_rules

_WORKLOADS = ["apps/v1/Deployment", "apps/v1/StatefulSet", "apps/v1/DaemonSet"]

_HELMRELEASE_REMEDIATION = {
    "UpgradeFailed": "Check Helm release history; rollback if needed; verify chart values",
    "InstallFailed": "Check Helm template output for errors; verify prerequisites",
    "ArtifactFailed": "Verify HelmRepository or HelmChart source is accessible",
    "DependencyNotReady": "Ensure source GitRepository/HelmRepository is ready",
    "ReconciliationFailed": "Check controller logs; verify RBAC permissions",
}

_KUSTOMIZATION_REMEDIATION = {
    "BuildFailed": "Check kustomization.yaml syntax; verify paths exist in source",
    "HealthCheckFailed": "Resources deployed but not healthy; check pod logs",
    "ArtifactFailed": "GitRepository source not ready; check source status",
    "DependencyNotReady": "Dependent Kustomization not ready; check dependency chain",
    "ReconciliationFailed": "Check controller logs; verify RBAC permissions",
    "PruneFailed": "Prune failed; check for finalizers or admission webhooks",
}

_APPLICATION_REMEDIATION = {
    "Running": "Sync in progress for too long; check application-controller logs",
    "Error": "Sync failed; check sync errors in UI or argocd app get",
    "Failed": "Sync failed; check sync errors in UI or argocd app get",
}

BUILTIN_RULE_DOCUMENTS: list[dict[str, Any]] = [
    # STATE
    {
        "id": "CCVE-2025-0166",
        "name": "HelmRelease stuck reconciling",
        "severity": "warning",
        "category": "STATE",
        "description": "HelmRelease has been Ready=False for longer than the stuck threshold",
        "detection": {
            "resources": ["HelmRelease"],
            "stuck": {"condition": "Ready", "remediation": _HELMRELEASE_REMEDIATION},
        },
        "remediation": "Check flux logs; force reconcile with flux reconcile",
        "tags": ["flux", "helm"],
    },
    {
        "id": "CCVE-2025-0012",
        "name": "Kustomization stuck reconciling",
        "severity": "warning",
        "category": "STATE",
        "description": "Kustomization has been Ready=False for longer than the stuck threshold",
        "detection": {
            "resources": ["Kustomization"],
            "stuck": {"condition": "Ready", "remediation": _KUSTOMIZATION_REMEDIATION},
        },
        "remediation": "Check flux logs; force reconcile with flux reconcile",
        "tags": ["flux", "kustomize"],
    },
    {
        "id": "CCVE-2025-0169",
        "name": "Argo CD Application stuck syncing",
        "severity": "warning",
        "category": "STATE",
        "description": "An Argo CD sync operation has been running or failing past the stuck threshold",
        "detection": {
            "resources": ["argoproj.io/v1alpha1/Application"],
            "stuck": {
                "path": "status.operationState.phase",
                "failing": ["Running", "Error", "Failed"],
                "since": "status.operationState.startedAt",
                "messagePath": "status.operationState.message",
                "remediation": _APPLICATION_REMEDIATION,
            },
        },
        "remediation": "Check argocd app get for details; force sync if needed",
        "tags": ["argocd"],
    },
    {
        "id": "CCVE-2025-0242",
        "name": "HelmRelease missing timeout",
        "severity": "warning",
        "category": "STATE",
        "detection": {
            "resources": ["HelmRelease"],
            "conditions": [{"path": "spec.timeout", "operator": "not_exists"}],
        },
        "message": "HelmRelease {namespace}/{name} has no timeout configured and can hang indefinitely",
        "remediation": "Add spec.timeout (e.g., '10m') to prevent indefinite hangs",
        "tags": ["flux", "helm"],
    },
    {
        "id": "CCVE-2025-0243",
        "name": "Kustomization missing timeout",
        "severity": "warning",
        "category": "STATE",
        "detection": {
            "resources": ["Kustomization"],
            "conditions": [{"path": "spec.timeout", "operator": "not_exists"}],
        },
        "message": "Kustomization {namespace}/{name} has no timeout configured and can hang indefinitely",
        "remediation": "Add spec.timeout (e.g., '5m') to prevent indefinite hangs",
        "tags": ["flux", "kustomize"],
    },
    {
        "id": "CCVE-2025-0665",
        "name": "Reconciliation interval is zero",
        "severity": "critical",
        "category": "STATE",
        "detection": {
            "resources": ["HelmRelease", "Kustomization"],
            "conditions": [{"path": "spec.interval", "operator": "matches", "value": "^0+(ms|s|m|h)?$"}],
        },
        "remediation": "Set a non-zero interval (e.g., spec.interval: 5m) to enable reconciliation",
        "tags": ["flux"],
    },
    # SOURCE
    {
        "id": "CCVE-2025-0666",
        "name": "Source suspended",
        "severity": "warning",
        "category": "SOURCE",
        "detection": {
            "resources": ["GitRepository", "OCIRepository", "HelmRepository"],
            "conditions": [{"path": "spec.suspend", "operator": "equals", "value": True}],
        },
        "message": "{kind} {namespace}/{name} is suspended; dependents will not receive new revisions",
        "remediation": "Resume the source or point dependents to an active source",
        "tags": ["flux"],
    },
    # SILENT
    {
        "id": "CCVE-2025-0662",
        "name": "Optional valuesFrom reference",
        "severity": "warning",
        "category": "SILENT",
        "description": "An optional valuesFrom source that is missing is silently ignored",
        "detection": {
            "resources": ["HelmRelease"],
            "conditions": [{"path": "spec.valuesFrom[?(@.optional==true)]", "operator": "exists"}],
        },
        "remediation": "Create the referenced ConfigMap/Secret or remove optional:true to fail explicitly",
        "tags": ["flux", "helm"],
    },
    # CONFIG
    {
        "id": "CCVE-2025-0245",
        "name": "revisionHistoryLimit is zero",
        "severity": "warning",
        "category": "CONFIG",
        "detection": {
            "resources": _WORKLOADS,
            "conditions": [{"path": "spec.revisionHistoryLimit", "operator": "equals", "value": 0}],
        },
        "message": "{kind} {namespace}/{name}: revisionHistoryLimit 0 prevents rollback",
        "remediation": "Set revisionHistoryLimit >= 2 to allow rollback",
    },
    {
        "id": "CCVE-2025-0248",
        "name": "Workload without resource limits",
        "severity": "warning",
        "category": "CONFIG",
        "detection": {
            "resources": _WORKLOADS,
            "conditions": [{"path": "spec.template.spec.containers[*].resources.limits", "operator": "not_exists"}],
        },
        "remediation": {"steps": ["Add resources.limits.cpu", "Add resources.limits.memory"]},
    },
    {
        "id": "CCVE-2025-0671",
        "name": "Chart version wildcard",
        "severity": "warning",
        "category": "CONFIG",
        "detection": {
            "resources": ["HelmRelease"],
            "conditions": [{"path": "spec.chart.spec.version", "operator": "contains", "value": "*"}],
        },
        "remediation": "Pin to a specific version (e.g., 1.2.3) for predictable deployments",
        "tags": ["flux", "helm"],
    },
    {
        "id": "KS-CONFIG-REDIS-MAXMEMORY",
        "name": "Redis without maxmemory",
        "severity": "warning",
        "category": "CONFIG",
        "description": "Redis without a memory ceiling is OOM-killed instead of evicting keys",
        "detection": {
            "resources": _WORKLOADS,
            "conditions": [
                {
                    "path": "spec.template.spec.containers[*].image",
                    "operator": "matches",
                    "value": "(^|/)redis([:@]|$)",
                },
                {"path": 'spec.template.spec.containers[*].env[?(@.name=="MAXMEMORY")]', "operator": "not_exists"},
                {"path": 'spec.template.spec.containers[*].args[?(@=="--maxmemory")]', "operator": "not_exists"},
            ],
        },
        "remediation": "Set the MAXMEMORY environment variable or pass --maxmemory",
        "tags": ["redis", "memory"],
    },
    # TIMING
    {
        "id": "CCVE-2025-0246",
        "name": "PDB with minAvailable 100%",
        "severity": "critical",
        "category": "TIMING",
        "detection": {
            "resources": ["policy/v1/PodDisruptionBudget"],
            "conditions": [{"path": "spec.minAvailable", "operator": "equals", "value": "100%"}],
        },
        "message": "PodDisruptionBudget {namespace}/{name}: minAvailable 100% blocks all voluntary disruptions",
        "remediation": "Use minAvailable < 100% or maxUnavailable > 0",
    },
    {
        "id": "CCVE-2025-0035",
        "name": "Certificate duration too short",
        "severity": "warning",
        "category": "TIMING",
        "detection": {
            "resources": ["cert-manager.io/v1/Certificate"],
            "conditions": [
                {"path": "spec.duration", "operator": "matches", "value": "^([1-9]|1[0-9]|2[0-3])h(0m)?(0s)?$"},
            ],
        },
        "remediation": "Use duration >= 24h to allow sufficient renewal time",
        "tags": ["cert-manager"],
    },
    # ORPHAN
    {
        "id": "KS-ORPHAN-PRUNE-DISABLED",
        "name": "Kustomization prune disabled",
        "severity": "info",
        "category": "ORPHAN",
        "description": "Resources removed from Git are left running when prune is disabled",
        "detection": {
            "resources": ["Kustomization"],
            "conditions": [{"path": "spec.prune", "operator": "equals", "value": False}],
        },
        "remediation": "Set spec.prune: true so deleted manifests are garbage-collected",
        "tags": ["flux"],
    },
    # DRIFT
    {
        "id": "KS-DRIFT-ARGO-OUTOFSYNC",
        "name": "Argo CD Application out of sync",
        "severity": "warning",
        "category": "DRIFT",
        "detection": {
            "resources": ["argoproj.io/v1alpha1/Application"],
            "conditions": [{"path": "status.sync.status", "operator": "equals", "value": "OutOfSync"}],
        },
        "remediation": "Review the diff (argocd app diff) and sync or accept the drift",
        "tags": ["argocd"],
    },
]


@functools.lru_cache(maxsize=8)
def builtin_rules(stuck_threshold: timedelta = DEFAULT_STUCK_THRESHOLD) -> tuple[Rule, ...]:
    """The built-in catalog, parsed once per stuck threshold."""
    rules, _ = parse_rules(BUILTIN_RULE_DOCUMENTS, stuck_threshold=stuck_threshold)
    return tuple(rules)
