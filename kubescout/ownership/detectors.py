"""Ownership detectors.

Each detector is a pure function of a record's labels, annotations and
ownerReferences returning an OwnershipResult on a match or ``None``.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence

from kubescout.models.ownership import OwnershipResult, OwnerType
from kubescout.models.resources import OwnerReference

Detector = Callable[[Mapping[str, str], Mapping[str, str], Sequence[OwnerReference]], OwnershipResult | None]

CONFIGHUB_UNIT = "confighub.com/UnitSlug"
CONFIGHUB_SPACE = "confighub.com/SpaceName"
FLUX_KUSTOMIZE_NAME = "kustomize.toolkit.fluxcd.io/name"
FLUX_KUSTOMIZE_NAMESPACE = "kustomize.toolkit.fluxcd.io/namespace"
FLUX_HELM_NAME = "helm.toolkit.fluxcd.io/name"
FLUX_HELM_NAMESPACE = "helm.toolkit.fluxcd.io/namespace"
ARGO_INSTANCE = "argocd.argoproj.io/instance"
ARGO_TRACKING_ID = "argocd.argoproj.io/tracking-id"
APP_INSTANCE = "app.kubernetes.io/instance"
MANAGED_BY = "app.kubernetes.io/managed-by"
HELM_CHART = "helm.sh/chart"
TERRAFORM_RUN_ID = "app.terraform.io/run-id"
TERRAFORM_WORKSPACE = "app.terraform.io/workspace-name"
TERRAFORM_MANAGED = "app.terraform.io/managed"


def _result(
    owner_type: OwnerType,
    sub_type: str,
    marker: str,
    name: str = "",
    namespace: str = "",
) -> OwnershipResult:
    ref_parts = [part for part in (sub_type, namespace, name) if part]
    detail = {"sub_type": sub_type, "marker": marker}
    if name:
        detail["name"] = name
    if namespace:
        detail["namespace"] = namespace
    return OwnershipResult(owner_type=owner_type, ref="/".join(ref_parts), detail=detail)


def detect_confighub(
    labels: Mapping[str, str],
    annotations: Mapping[str, str],
    owners: Sequence[OwnerReference],
) -> OwnershipResult | None:
    unit = labels.get(CONFIGHUB_UNIT) or annotations.get(CONFIGHUB_UNIT)
    if not unit:
        return None
    space = annotations.get(CONFIGHUB_SPACE) or labels.get(CONFIGHUB_SPACE, "")
    return _result(OwnerType.CONFIGHUB, "unit", CONFIGHUB_UNIT, unit, space)


def detect_flux_kustomization(
    labels: Mapping[str, str],
    annotations: Mapping[str, str],
    owners: Sequence[OwnerReference],
) -> OwnershipResult | None:
    name = labels.get(FLUX_KUSTOMIZE_NAME)
    if not name:
        return None
    namespace = labels.get(FLUX_KUSTOMIZE_NAMESPACE, "")
    return _result(OwnerType.FLUX, "kustomization", FLUX_KUSTOMIZE_NAME, name, namespace)


def detect_flux_helmrelease(
    labels: Mapping[str, str],
    annotations: Mapping[str, str],
    owners: Sequence[OwnerReference],
) -> OwnershipResult | None:
    name = labels.get(FLUX_HELM_NAME)
    if not name:
        return None
    namespace = labels.get(FLUX_HELM_NAMESPACE, "")
    return _result(OwnerType.FLUX, "helmrelease", FLUX_HELM_NAME, name, namespace)


def detect_argocd(
    labels: Mapping[str, str],
    annotations: Mapping[str, str],
    owners: Sequence[OwnerReference],
) -> OwnershipResult | None:
    if ARGO_INSTANCE in labels:
        app = labels.get(APP_INSTANCE) or labels[ARGO_INSTANCE]
        return _result(OwnerType.ARGOCD, "application", ARGO_INSTANCE, app)
    tracking = annotations.get(ARGO_TRACKING_ID)
    if tracking:
        # <app>:<group>/<kind>:<namespace>/<name>
        app = tracking.split(":", 1)[0]
        return _result(OwnerType.ARGOCD, "application", ARGO_TRACKING_ID, app)
    return None


def detect_helm(
    labels: Mapping[str, str],
    annotations: Mapping[str, str],
    owners: Sequence[OwnerReference],
) -> OwnershipResult | None:
    if labels.get(MANAGED_BY) == "Helm":
        return _result(OwnerType.HELM, "release", MANAGED_BY, labels.get(APP_INSTANCE, ""))
    chart = labels.get(HELM_CHART)
    if chart:
        return _result(OwnerType.HELM, "release", HELM_CHART, labels.get(APP_INSTANCE) or chart)
    return None


def detect_terraform(
    labels: Mapping[str, str],
    annotations: Mapping[str, str],
    owners: Sequence[OwnerReference],
) -> OwnershipResult | None:
    if TERRAFORM_RUN_ID in annotations:
        workspace = annotations.get(TERRAFORM_WORKSPACE, "")
        return _result(OwnerType.TERRAFORM, "workspace", TERRAFORM_RUN_ID, workspace)
    if TERRAFORM_MANAGED in labels:
        return _result(OwnerType.TERRAFORM, "managed", TERRAFORM_MANAGED)
    return None


def detect_native(
    labels: Mapping[str, str],
    annotations: Mapping[str, str],
    owners: Sequence[OwnerReference],
) -> OwnershipResult | None:
    if not owners:
        return None
    owner = owners[0]
    return OwnershipResult(
        owner_type=OwnerType.NATIVE,
        ref=f"{owner.kind}/{owner.name}",
        detail={"sub_type": owner.kind.lower(), "name": owner.name, "marker": "ownerReferences"},
    )


# (detector, priority); lower priority runs first, ties keep list order.
DEFAULT_DETECTORS: tuple[tuple[Detector, int], ...] = (
    (detect_confighub, 1),
    (detect_flux_kustomization, 2),
    (detect_flux_helmrelease, 2),
    (detect_argocd, 2),
    (detect_helm, 3),
    (detect_terraform, 3),
    (detect_native, 4),
)
