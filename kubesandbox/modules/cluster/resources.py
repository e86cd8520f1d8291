"""
Builders for the manifests of the objects deployed in the sandbox project.
"""

from typing import Any, Dict, List, Optional

# Label used to identify the objects of each application:
APP_LABEL = "app"

# Route annotation that lets long running tests finish before the router gives up:
ROUTE_TIMEOUT_ANNOTATION = "haproxy.router.openshift.io/timeout"
ROUTE_TIMEOUT = "10m"


def _metadata(name: str, app: Optional[str] = None, annotations: Optional[Dict[str, str]] = None):
    metadata: Dict[str, Any] = {"name": name}
    if app:
        metadata["labels"] = {APP_LABEL: app}
    if annotations:
        metadata["annotations"] = annotations
    return metadata


def project_request(name: str) -> Dict[str, Any]:
    return {
        "apiVersion": "project.openshift.io/v1",
        "kind": "ProjectRequest",
        "metadata": _metadata(name),
    }


def service_account(name: str) -> Dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "ServiceAccount",
        "metadata": _metadata(name, app=name),
    }


def admin_role_binding(name: str, project: str) -> Dict[str, Any]:
    """Give the service account with the same name full permissions inside the project."""
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "RoleBinding",
        "metadata": _metadata(name, app=name),
        "subjects": [
            {
                "kind": "ServiceAccount",
                "name": name,
                "namespace": project,
            },
        ],
        "roleRef": {
            "apiGroup": "rbac.authorization.k8s.io",
            "kind": "ClusterRole",
            "name": "admin",
        },
    }


def secret(name: str, data: Dict[str, str], app: Optional[str] = None) -> Dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": _metadata(name, app=app),
        "type": "Opaque",
        "stringData": data,
    }


def pod(
    name: str,
    image: str,
    command: List[str],
    env: Optional[List[Dict[str, Any]]] = None,
    port: Optional[int] = None,
    work_volume: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Pod running one container with the given image and command.

    The service account used is the one with the same name as the pod. When
    work_volume is given an empty directory is mounted there.
    """
    container: Dict[str, Any] = {
        "name": name,
        "image": image,
        "imagePullPolicy": "Always",
        "command": command,
    }
    if env:
        container["env"] = env
    if port is not None:
        container["ports"] = [{"containerPort": port, "protocol": "TCP"}]
    spec: Dict[str, Any] = {
        "serviceAccountName": name,
        "containers": [container],
    }
    if work_volume:
        container["volumeMounts"] = [{"name": "work", "mountPath": work_volume}]
        spec["volumes"] = [{"name": "work", "emptyDir": {}}]
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": _metadata(name, app=name),
        "spec": spec,
    }


def service(name: str, port: int) -> Dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": _metadata(name, app=name),
        "spec": {
            "selector": {APP_LABEL: name},
            "ports": [{"port": port, "targetPort": port}],
        },
    }


def route(name: str) -> Dict[str, Any]:
    """Edge terminated route pointing to the service with the same name."""
    return {
        "apiVersion": "route.openshift.io/v1",
        "kind": "Route",
        "metadata": _metadata(
            name, app=name, annotations={ROUTE_TIMEOUT_ANNOTATION: ROUTE_TIMEOUT}
        ),
        "spec": {
            "to": {"kind": "Service", "name": name},
            "tls": {"termination": "edge"},
        },
    }


def secret_env(variable: str, secret_name: str, key: str) -> Dict[str, Any]:
    """Environment variable taken from a key of a secret."""
    return {
        "name": variable,
        "valueFrom": {"secretKeyRef": {"name": secret_name, "key": key}},
    }
