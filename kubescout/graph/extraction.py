"""Data-driven extraction rules for the relationship graph.

Each ReferenceRule names a source kind, the path (relative to the source
body) yielding references, the target kind and the edge type. Adding a new
relationship means adding a row, not a traversal method.
"""

from __future__ import annotations

from dataclasses import dataclass

from kubescout.graph.models import DanglingReason, EdgeType

# Where each workload kind keeps its pod spec.
POD_SPEC_PATHS: dict[str, str] = {
    "Pod": "spec",
    "Deployment": "spec.template.spec",
    "StatefulSet": "spec.template.spec",
    "DaemonSet": "spec.template.spec",
    "ReplicaSet": "spec.template.spec",
    "ReplicationController": "spec.template.spec",
    "Job": "spec.template.spec",
    "CronJob": "spec.jobTemplate.spec.template.spec",
}

REASON_BY_TARGET_KIND: dict[str, DanglingReason] = {
    "Service": DanglingReason.SERVICE_NOT_FOUND,
    "Secret": DanglingReason.SECRET_NOT_FOUND,
    "ConfigMap": DanglingReason.CONFIGMAP_NOT_FOUND,
    "PersistentVolumeClaim": DanglingReason.CLAIM_NOT_FOUND,
    "ServiceAccount": DanglingReason.SERVICEACCOUNT_NOT_FOUND,
}


@dataclass(frozen=True)
class ReferenceRule:
    """One row of the extraction table.

    The path yields either a name string or a reference object. For objects,
    ``name_field`` holds the name, ``kind_field`` (when set) overrides
    ``target_kind``, and ``optional: true`` suppresses dangling reports.
    Names in ``implicit`` are never reported when unresolved.
    """

    source_kind: str
    path: str
    target_kind: str
    edge_type: EdgeType
    name_field: str = ""
    kind_field: str = ""
    implicit: frozenset[str] = frozenset()

    def reason_for(self, target_kind: str) -> DanglingReason:
        if self.edge_type == EdgeType.SCALE_TARGET:
            return DanglingReason.TARGET_NOT_FOUND
        return REASON_BY_TARGET_KIND.get(target_kind, DanglingReason.TARGET_NOT_FOUND)


@dataclass(frozen=True)
class SelectorRule:
    """A label selector declared by *source_kind* at *path*."""

    source_kind: str
    path: str
    structured: bool
    target_kind: str = "Pod"
    empty_selects_all: bool = False
    suggestion: str = ""


# (path relative to the pod spec, target kind, edge type, name field)
_POD_SPEC_REFERENCES: tuple[tuple[str, str, EdgeType, str], ...] = (
    ("volumes[*].configMap", "ConfigMap", EdgeType.MOUNTS, "name"),
    ("volumes[*].secret", "Secret", EdgeType.MOUNTS, "secretName"),
    ("volumes[*].persistentVolumeClaim", "PersistentVolumeClaim", EdgeType.MOUNTS, "claimName"),
    ("volumes[*].projected.sources[*].configMap", "ConfigMap", EdgeType.MOUNTS, "name"),
    ("volumes[*].projected.sources[*].secret", "Secret", EdgeType.MOUNTS, "name"),
    ("containers[*].env[*].valueFrom.configMapKeyRef", "ConfigMap", EdgeType.REFERENCES, "name"),
    ("containers[*].env[*].valueFrom.secretKeyRef", "Secret", EdgeType.REFERENCES, "name"),
    ("containers[*].envFrom[*].configMapRef", "ConfigMap", EdgeType.REFERENCES, "name"),
    ("containers[*].envFrom[*].secretRef", "Secret", EdgeType.REFERENCES, "name"),
    ("initContainers[*].env[*].valueFrom.configMapKeyRef", "ConfigMap", EdgeType.REFERENCES, "name"),
    ("initContainers[*].env[*].valueFrom.secretKeyRef", "Secret", EdgeType.REFERENCES, "name"),
    ("initContainers[*].envFrom[*].configMapRef", "ConfigMap", EdgeType.REFERENCES, "name"),
    ("initContainers[*].envFrom[*].secretRef", "Secret", EdgeType.REFERENCES, "name"),
    ("imagePullSecrets[*]", "Secret", EdgeType.IMAGE_PULL_SECRET, "name"),
)


def _pod_spec_rules() -> list[ReferenceRule]:
    rules: list[ReferenceRule] = []
    for kind, prefix in POD_SPEC_PATHS.items():
        for path, target, edge_type, name_field in _POD_SPEC_REFERENCES:
            rules.append(ReferenceRule(kind, f"{prefix}.{path}", target, edge_type, name_field=name_field))
        rules.append(
            ReferenceRule(
                kind,
                f"{prefix}.serviceAccountName",
                "ServiceAccount",
                EdgeType.REFERENCES,
                implicit=frozenset({"default"}),
            )
        )
    return rules


REFERENCE_RULES: tuple[ReferenceRule, ...] = (
    *_pod_spec_rules(),
    ReferenceRule(
        "HorizontalPodAutoscaler",
        "spec.scaleTargetRef",
        "Deployment",
        EdgeType.SCALE_TARGET,
        name_field="name",
        kind_field="kind",
    ),
    ReferenceRule("Ingress", "spec.rules[*].http.paths[*].backend.service", "Service", EdgeType.BACKEND, "name"),
    ReferenceRule("Ingress", "spec.rules[*].http.paths[*].backend.serviceName", "Service", EdgeType.BACKEND),
    ReferenceRule("Ingress", "spec.defaultBackend.service", "Service", EdgeType.BACKEND, "name"),
    ReferenceRule("Ingress", "spec.tls[*].secretName", "Secret", EdgeType.TLS_SECRET),
    ReferenceRule("ServiceAccount", "imagePullSecrets[*]", "Secret", EdgeType.IMAGE_PULL_SECRET, "name"),
    ReferenceRule("ServiceAccount", "secrets[*]", "Secret", EdgeType.REFERENCES, "name"),
)

SELECTOR_RULES: tuple[SelectorRule, ...] = (
    SelectorRule(
        "Service",
        "spec.selector",
        structured=False,
        suggestion="Check if the deployment exists and has matching labels",
    ),
    SelectorRule(
        "PodDisruptionBudget",
        "spec.selector",
        structured=True,
        empty_selects_all=True,
        suggestion="Check if the deployment exists or delete this PDB",
    ),
    SelectorRule(
        "NetworkPolicy",
        "spec.podSelector",
        structured=True,
        suggestion="Check the podSelector labels or delete this NetworkPolicy",
    ),
)


def rules_by_source_kind(rules: tuple[ReferenceRule, ...]) -> dict[str, list[ReferenceRule]]:
    table: dict[str, list[ReferenceRule]] = {}
    for rule in rules:
        table.setdefault(rule.source_kind, []).append(rule)
    return table
