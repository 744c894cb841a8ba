# esoperator/k8s.py
import base64
import logging
import os
import tempfile
from typing import List, Optional

import kopf
from kubernetes import client, config
from kubernetes.client import ApiException

from escontroller import settings
from escontroller.errors import AssociationNotFound, TransientError
from escontroller.es_client import ESClient
from escontroller.events import Event
from escontroller.models import ClusterResource, NodeSet, Pod
from escontroller.observer import Cluster

ELASTIC_USER = "elastic"
CA_KEY = "ca.crt"

_k8s_loaded = False


def ensure_k8s():
    """Load kubeconfig exactly once."""
    global _k8s_loaded
    if _k8s_loaded:
        return
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()
    _k8s_loaded = True


class KubernetesStore:
    """Reads ElasticsearchConfig resources and writes back their status and hints."""

    def __init__(self, api: Optional[client.CustomObjectsApi] = None):
        self.api = api or client.CustomObjectsApi()

    def get(self, namespace: str, name: str) -> Optional[ClusterResource]:
        try:
            body = self.api.get_namespaced_custom_object(
                settings.ESCONFIG_GROUP, settings.ESCONFIG_VERSION, namespace, settings.ESCONFIG_PLURAL, name,
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise
        return ClusterResource.from_body(body)

    def update_status(self, resource: ClusterResource):
        """Writes status, then the hints annotation.

        The status subresource ignores metadata, so these are two patches. A
        failure between them leaves status written with the previous hints,
        which the next pass recomputes.
        """
        try:
            self.api.patch_namespaced_custom_object_status(
                settings.ESCONFIG_GROUP, settings.ESCONFIG_VERSION, resource.namespace, settings.ESCONFIG_PLURAL,
                resource.name, {"status": resource.status.to_dict()},
            )
            hints = resource.annotations.get(settings.HINTS_ANNOTATION)
            if hints is not None:
                self.api.patch_namespaced_custom_object(
                    settings.ESCONFIG_GROUP, settings.ESCONFIG_VERSION, resource.namespace, settings.ESCONFIG_PLURAL,
                    resource.name, {"metadata": {"annotations": {settings.HINTS_ANNOTATION: hints}}},
                )
        except ApiException as e:
            raise TransientError(f"failed to update {resource.namespace}/{resource.name}: {e.reason}") from e


def is_pod_ready(pod) -> bool:
    conditions = (pod.status.conditions if pod.status else None) or []
    return any(c.type == "Ready" and c.status == "True" for c in conditions)


class ClusterResolver:
    """Looks up the Elasticsearch cluster a config refers to and builds a client for it."""

    def __init__(
        self,
        custom_api: Optional[client.CustomObjectsApi] = None,
        core_api: Optional[client.CoreV1Api] = None,
        apps_api: Optional[client.AppsV1Api] = None,
        logger: Optional[logging.Logger] = None,
        verify_tls: bool = settings.ES_VERIFY_TLS,
    ):
        self.custom_api = custom_api or client.CustomObjectsApi()
        self.core_api = core_api or client.CoreV1Api()
        self.apps_api = apps_api or client.AppsV1Api()
        self.logger = logger or logging.getLogger(__name__)
        self.verify_tls = verify_tls

    def _call(self, kind: str, namespace: str, name: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except ApiException as e:
            if e.status == 404:
                raise AssociationNotFound(kind, namespace, name)
            raise TransientError(f"failed to read {kind} {namespace}/{name}: {e.reason}") from e

    def resolve(self, namespace: str, name: str) -> Cluster:
        self._call("Elasticsearch", namespace, name, self.custom_api.get_namespaced_custom_object,
                   settings.ES_GROUP, settings.ES_VERSION, namespace, settings.ES_PLURAL, name)

        secret_name = f"{name}-es-elastic-user"
        secret = self._call("Secret", namespace, secret_name, self.core_api.read_namespaced_secret,
                            secret_name, namespace)
        password = base64.b64decode((secret.data or {}).get(ELASTIC_USER, "")).decode()

        selector = f"{settings.CLUSTER_NAME_LABEL}={name}"
        pods = self._call("Pods", namespace, name, self.core_api.list_namespaced_pod,
                          namespace, label_selector=selector)
        stss = self._call("StatefulSets", namespace, name, self.apps_api.list_namespaced_stateful_set,
                          namespace, label_selector=selector)

        cluster_pods = self._pods(pods.items)
        node_sets = self._node_sets(stss.items)

        # read last so no earlier failure leaves the file behind
        ca_file = self._ca_file(namespace, name) if self.verify_tls else None

        endpoint = f"https://{name}-es-http.{namespace}.svc:{settings.ES_PORT}"
        return Cluster(
            namespace=namespace,
            name=name,
            client=ESClient(endpoint, auth=(ELASTIC_USER, password), verify=self.verify_tls,
                            logger=self.logger, ca_file=ca_file),
            pods=cluster_pods,
            node_sets=node_sets,
        )

    def _ca_file(self, namespace: str, name: str) -> str:
        """Writes the CA of the cluster's http certificate to a temporary file."""
        secret_name = f"{name}-es-http-certs-public"
        secret = self._call("Secret", namespace, secret_name, self.core_api.read_namespaced_secret,
                            secret_name, namespace)
        ca = (secret.data or {}).get(CA_KEY)
        if not ca:
            raise TransientError(f"secret {namespace}/{secret_name} has no {CA_KEY}")
        fd, path = tempfile.mkstemp(prefix=f"{name}-es-http-ca-", suffix=".crt")
        with os.fdopen(fd, "wb") as f:
            f.write(base64.b64decode(ca))
        return path

    @staticmethod
    def _pods(items) -> List[Pod]:
        return [
            Pod(name=p.metadata.name, labels=dict(p.metadata.labels or {}), ready=is_pod_ready(p))
            for p in items
        ]

    @staticmethod
    def _node_sets(items) -> List[NodeSet]:
        node_sets = []
        for sts in items:
            template = sts.spec.template if sts.spec else None
            labels = (template.metadata.labels if template and template.metadata else None) or {}
            node_sets.append(NodeSet(name=sts.metadata.name, labels=dict(labels)))
        return node_sets


class KopfRecorder:
    def emit(self, resource: ClusterResource, event: Event):
        kopf.event(resource.body, type=event.type, reason=event.reason, message=event.message)
