# escontroller/settings.py
import os

CONTROLLER_VERSION = os.environ.get("CONTROLLER_VERSION", "1.3.0")

# Elasticsearch requests made while converging operations
ES_REQUEST_TIMEOUT = float(os.environ.get("ES_REQUEST_TIMEOUT", "60"))
# set to false only for clusters serving certificates that cannot be verified
ES_VERIFY_TLS = os.environ.get("ES_VERIFY_TLS", "true").lower() == "true"
ES_PORT = int(os.environ.get("ES_PORT", "9200"))

RETRY_DELAY = int(os.environ.get("RETRY_DELAY", "30"))
RESYNC_INTERVAL = float(os.environ.get("RESYNC_INTERVAL", "300"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

ESCONFIG_GROUP = "esconfig.k8s.elastic.co"
ESCONFIG_VERSION = "v1alpha1"
ESCONFIG_PLURAL = "elasticsearchconfigs"

ES_GROUP = "elasticsearch.k8s.elastic.co"
ES_VERSION = "v1"
ES_PLURAL = "elasticsearches"

CLUSTER_NAME_LABEL = "elasticsearch.k8s.elastic.co/cluster-name"
VERSION_LABEL = "elasticsearch.k8s.elastic.co/version"
MANAGED_ANNOTATION = "eck.k8s.elastic.co/managed"
HINTS_ANNOTATION = "eck.k8s.elastic.co/orchestration-hints"

# node shutdown API is only available from this version on
SHUTDOWN_API_MIN_VERSION = "7.15.0"
