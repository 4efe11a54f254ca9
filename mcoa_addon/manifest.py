"""Representation of the API objects the addon reads and writes.

Objects travel through the API client as raw kubernetes documents (plain
dictionaries). The dataclasses in this module are typed, validated views over
the documents the addon needs to interpret. Each view is built with
`parse_doc` which raises a `ConfigurationError` on malformed input.
"""

from dataclasses import dataclass, field
import logging
from typing import Any, ClassVar

from mashumaro import DataClassDictMixin, field_options
from mashumaro.codecs.yaml import yaml_decode, yaml_encode
from mashumaro.config import BaseConfig

from .exceptions import ConfigurationError

__all__ = [
    "ConfigKey",
    "EnvelopeKey",
    "NamedResource",
    "ConfigReference",
    "ManagedClusterAddOn",
    "AddOnDeploymentConfig",
    "ManagedCluster",
    "ManifestWork",
    "ConfigMap",
    "Secret",
]

_LOGGER = logging.getLogger(__name__)


ADDON_NAME = "multicluster-observability-addon"
INSTALL_NAMESPACE = "open-cluster-management-observability"

LABEL_ADDON_NAME = "open-cluster-management.io/addon-name"
LABEL_CLUSTER_SET = "cluster.open-cluster-management.io/clusterset"
LABEL_LOCAL_CLUSTER = "local-cluster"
LABEL_CLUSTER_ID = "clusterID"
CLAIM_CLUSTER_ID = "id.k8s.io"

ANNOTATION_CONFIG_HASH = "mcoa.openshift.io/config-hash"
ANNOTATION_CLUSTER_SET = "cluster.open-cluster-management.io/clusterset"
ANNOTATION_TARGET_OUTPUT_NAME = "tracing.mcoa.openshift.io/target-output-name"
ANNOTATION_SOURCE = "mcoa.openshift.io/source"

SECRET_KIND = "Secret"
CONFIG_MAP_KIND = "ConfigMap"
NAMESPACE_KIND = "Namespace"
CRD_KIND = "CustomResourceDefinition"
MANIFEST_WORK_KIND = "ManifestWork"
MANAGED_CLUSTER_KIND = "ManagedCluster"
MANAGED_CLUSTER_ADDON_KIND = "ManagedClusterAddOn"
CLUSTER_MANAGEMENT_ADDON_KIND = "ClusterManagementAddOn"
ADDON_DEPLOYMENT_CONFIG_KIND = "AddOnDeploymentConfig"
CERTIFICATE_KIND = "Certificate"
ISSUER_KIND = "Issuer"
CLUSTER_ISSUER_KIND = "ClusterIssuer"
CLUSTER_LOG_FORWARDER_KIND = "ClusterLogForwarder"
OPENTELEMETRY_COLLECTOR_KIND = "OpenTelemetryCollector"
INSTRUMENTATION_KIND = "Instrumentation"
PROMETHEUS_AGENT_KIND = "PrometheusAgent"
SCRAPE_CONFIG_KIND = "ScrapeConfig"
PROMETHEUS_RULE_KIND = "PrometheusRule"
UI_PLUGIN_KIND = "UIPlugin"
SUBSCRIPTION_KIND = "Subscription"
OPERATOR_GROUP_KIND = "OperatorGroup"

# The apiVersion used when the addon builds an object of the given kind.
API_VERSIONS: dict[str, str] = {
    SECRET_KIND: "v1",
    CONFIG_MAP_KIND: "v1",
    NAMESPACE_KIND: "v1",
    CRD_KIND: "apiextensions.k8s.io/v1",
    MANIFEST_WORK_KIND: "work.open-cluster-management.io/v1",
    MANAGED_CLUSTER_KIND: "cluster.open-cluster-management.io/v1",
    MANAGED_CLUSTER_ADDON_KIND: "addon.open-cluster-management.io/v1alpha1",
    CLUSTER_MANAGEMENT_ADDON_KIND: "addon.open-cluster-management.io/v1alpha1",
    ADDON_DEPLOYMENT_CONFIG_KIND: "addon.open-cluster-management.io/v1alpha1",
    CERTIFICATE_KIND: "cert-manager.io/v1",
    ISSUER_KIND: "cert-manager.io/v1",
    CLUSTER_ISSUER_KIND: "cert-manager.io/v1",
    CLUSTER_LOG_FORWARDER_KIND: "observability.openshift.io/v1",
    OPENTELEMETRY_COLLECTOR_KIND: "opentelemetry.io/v1beta1",
    INSTRUMENTATION_KIND: "opentelemetry.io/v1alpha1",
    PROMETHEUS_AGENT_KIND: "monitoring.rhobs/v1alpha1",
    SCRAPE_CONFIG_KIND: "monitoring.rhobs/v1alpha1",
    PROMETHEUS_RULE_KIND: "monitoring.coreos.com/v1",
    UI_PLUGIN_KIND: "observability.openshift.io/v1alpha1",
    SUBSCRIPTION_KIND: "operators.coreos.com/v1alpha1",
    OPERATOR_GROUP_KIND: "operators.coreos.com/v1",
}

# Configuration resources that may appear in an addon's status.configReferences
CONFIG_RESOURCE_KINDS: dict[str, str] = {
    "addondeploymentconfigs": ADDON_DEPLOYMENT_CONFIG_KIND,
    "clusterlogforwarders": CLUSTER_LOG_FORWARDER_KIND,
    "opentelemetrycollectors": OPENTELEMETRY_COLLECTOR_KIND,
    "instrumentations": INSTRUMENTATION_KIND,
    "prometheusagents": PROMETHEUS_AGENT_KIND,
    "scrapeconfigs": SCRAPE_CONFIG_KIND,
    "prometheusrules": PROMETHEUS_RULE_KIND,
    "configmaps": CONFIG_MAP_KIND,
    "secrets": SECRET_KIND,
}

CLUSTER_SCOPED_KINDS = {
    NAMESPACE_KIND,
    CRD_KIND,
    MANAGED_CLUSTER_KIND,
    CLUSTER_MANAGEMENT_ADDON_KIND,
    CLUSTER_ISSUER_KIND,
    UI_PLUGIN_KIND,
}


def api_group(api_version: str) -> str:
    """Return the group portion of an apiVersion, empty for the core group."""
    if "/" not in api_version:
        return ""
    return api_version.split("/", 1)[0]


def kind_group(kind: str) -> str:
    """Return the API group of a known kind."""
    return api_group(API_VERSIONS.get(kind, "v1"))


def _metadata(doc: dict[str, Any], cls: type) -> dict[str, Any]:
    if not (metadata := doc.get("metadata")):
        raise ConfigurationError(f"Invalid {cls.__name__} missing metadata: {doc}")
    if not metadata.get("name"):
        raise ConfigurationError(f"Invalid {cls.__name__} missing metadata.name: {doc}")
    return metadata


def _check_kind(doc: dict[str, Any], kind: str) -> None:
    if (found := doc.get("kind")) and found != kind:
        raise ConfigurationError(f"Invalid object expected kind '{kind}': {found}")


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    @classmethod
    def parse_yaml(cls, content: str) -> "BaseManifest":
        """Parse a serialized object."""
        return yaml_decode(content, cls)

    def yaml(self) -> str:
        """Return a YAML string representation of the object."""
        return yaml_encode(self, self.__class__)  # type: ignore[return-value]

    class Config(BaseConfig):
        omit_none = True


@dataclass(frozen=True, order=True)
class NamedResource:
    """Identifier used to address an object on the API."""

    kind: str
    namespace: str | None
    name: str

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "NamedResource":
        """Build the identifier of a raw kubernetes object."""
        metadata = doc.get("metadata", {})
        return cls(
            kind=doc["kind"],
            namespace=metadata.get("namespace") or None,
            name=metadata["name"],
        )

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        return f"{self.kind}/{self.namespaced_name}"


@dataclass(frozen=True, order=True)
class ConfigKey:
    """Stable identity of a configuration resource referenced by an envelope."""

    group: str
    kind: str
    namespace: str
    name: str

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "ConfigKey":
        """Derive the key of a raw kubernetes object.

        Objects delivered by watches may be missing apiVersion, in which case
        the group is resolved from the kind.
        """
        metadata = doc.get("metadata", {})
        kind = doc.get("kind", "")
        if api_version := doc.get("apiVersion"):
            group = api_group(api_version)
        else:
            group = kind_group(kind)
        return cls(
            group=group,
            kind=kind,
            namespace=metadata.get("namespace") or "",
            name=metadata.get("name", ""),
        )

    def __str__(self) -> str:
        return f"{self.group}/{self.kind}/{self.namespace}/{self.name}"


def source_key(manifest: dict[str, Any]) -> ConfigKey:
    """Return the key of the hub object an embedded manifest was copied from.

    Copies record their origin as `<namespace>/<name>` in the source
    annotation. Manifests without the annotation are their own source.
    """
    key = ConfigKey.from_doc(manifest)
    annotations = manifest.get("metadata", {}).get("annotations") or {}
    if not (source := annotations.get(ANNOTATION_SOURCE)):
        return key
    namespace, _, name = source.rpartition("/")
    return ConfigKey(group=key.group, kind=key.kind, namespace=namespace, name=name)


@dataclass(frozen=True, order=True)
class EnvelopeKey:
    """Identity of a delivery envelope (ManifestWork)."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class ConfigReference(BaseManifest):
    """A configuration object referenced by an addon installation."""

    group: str
    """The API group of the referenced resource, empty for the core group."""

    resource: str
    """The plural resource name, e.g. addondeploymentconfigs."""

    name: str
    """The name of the referenced object."""

    namespace: str = ""
    """The namespace of the referenced object, empty when cluster scoped."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ConfigReference":
        """Parse a status.configReferences entry."""
        if not (resource := doc.get("resource")):
            raise ConfigurationError(f"Invalid config reference missing resource: {doc}")
        if not (name := doc.get("name")):
            raise ConfigurationError(f"Invalid config reference missing name: {doc}")
        return cls(
            group=doc.get("group", ""),
            resource=resource,
            name=name,
            namespace=doc.get("namespace", ""),
        )

    def config_key(self) -> ConfigKey | None:
        """Return the ConfigKey of the reference or None for an unknown resource."""
        if (kind := CONFIG_RESOURCE_KINDS.get(self.resource)) is None:
            _LOGGER.debug("Ignoring reference to unknown resource %s", self.resource)
            return None
        return ConfigKey(
            group=self.group, kind=kind, namespace=self.namespace, name=self.name
        )


@dataclass
class ManagedClusterAddOn(BaseManifest):
    """A named installation of the addon in a cluster namespace."""

    kind: ClassVar[str] = MANAGED_CLUSTER_ADDON_KIND

    name: str
    namespace: str
    annotations: dict[str, str] = field(default_factory=dict)
    config_references: list[ConfigReference] = field(default_factory=list)
    install_namespace: str | None = None
    uid: str | None = None

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ManagedClusterAddOn":
        """Parse a ManagedClusterAddOn from a kubernetes resource object."""
        _check_kind(doc, cls.kind)
        metadata = _metadata(doc, cls)
        if not (namespace := metadata.get("namespace")):
            raise ConfigurationError(f"Invalid {cls.__name__} missing metadata.namespace: {doc}")
        status = doc.get("status") or {}
        spec = doc.get("spec") or {}
        return cls(
            name=metadata["name"],
            namespace=namespace,
            annotations=dict(metadata.get("annotations") or {}),
            config_references=[
                ConfigReference.parse_doc(ref)
                for ref in status.get("configReferences") or ()
            ],
            install_namespace=spec.get("installNamespace"),
            uid=metadata.get("uid"),
        )

    def owner_reference(self) -> dict[str, Any] | None:
        """Return the owner reference of objects garbage collected with the addon."""
        if not self.uid:
            return None
        return {
            "apiVersion": API_VERSIONS[self.kind],
            "kind": self.kind,
            "name": self.name,
            "uid": self.uid,
        }

    @property
    def cluster_name(self) -> str:
        """The cluster the addon is installed on, by convention its namespace."""
        return self.namespace

    def references(self, kind: str) -> list[ConfigKey]:
        """Return the keys of the referenced configuration objects of a kind."""
        return [
            key
            for ref in self.config_references
            if (key := ref.config_key()) is not None and key.kind == kind
        ]

    def config_keys(self) -> set[ConfigKey]:
        """Return the keys of all the referenced configuration objects."""
        return {
            key
            for ref in self.config_references
            if (key := ref.config_key()) is not None
        }


@dataclass
class CustomizedVariable(BaseManifest):
    """A name/value variable of an AddOnDeploymentConfig."""

    name: str
    value: str = ""


@dataclass
class AddOnDeploymentConfig(BaseManifest):
    """Configuration object parameterising the addon render."""

    kind: ClassVar[str] = ADDON_DEPLOYMENT_CONFIG_KIND

    name: str
    namespace: str | None = None
    customized_variables: list[CustomizedVariable] = field(
        metadata=field_options(alias="customizedVariables"), default_factory=list
    )
    agent_install_namespace: str | None = field(
        metadata=field_options(alias="agentInstallNamespace"), default=None
    )
    node_selector: dict[str, str] = field(default_factory=dict)
    tolerations: list[dict[str, Any]] = field(default_factory=list)
    proxy_config: dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "AddOnDeploymentConfig":
        """Parse an AddOnDeploymentConfig from a kubernetes resource object."""
        _check_kind(doc, cls.kind)
        metadata = _metadata(doc, cls)
        spec = doc.get("spec") or {}
        variables = []
        for var in spec.get("customizedVariables") or ():
            if not (name := var.get("name")):
                raise ConfigurationError(
                    f"Invalid {cls.__name__} customized variable missing name: {var}"
                )
            variables.append(CustomizedVariable(name=name, value=str(var.get("value", ""))))
        placement = spec.get("nodePlacement") or {}
        return cls(
            name=metadata["name"],
            namespace=metadata.get("namespace"),
            customized_variables=variables,
            agent_install_namespace=spec.get("agentInstallNamespace"),
            node_selector=dict(placement.get("nodeSelector") or {}),
            tolerations=list(placement.get("tolerations") or []),
            proxy_config={
                key: value
                for key, value in (spec.get("proxyConfig") or {}).items()
                if key in ("httpProxy", "httpsProxy", "noProxy") and value
            },
        )


@dataclass
class ManagedCluster(BaseManifest):
    """A cluster of the fleet."""

    kind: ClassVar[str] = MANAGED_CLUSTER_KIND

    name: str
    labels: dict[str, str] = field(default_factory=dict)
    cluster_claims: dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ManagedCluster":
        """Parse a ManagedCluster from a kubernetes resource object."""
        _check_kind(doc, cls.kind)
        metadata = _metadata(doc, cls)
        status = doc.get("status") or {}
        return cls(
            name=metadata["name"],
            labels=dict(metadata.get("labels") or {}),
            cluster_claims={
                claim["name"]: claim.get("value", "")
                for claim in status.get("clusterClaims") or ()
                if claim.get("name")
            },
        )

    @property
    def is_hub(self) -> bool:
        """Return True when the cluster is the hub managing itself."""
        return self.labels.get(LABEL_LOCAL_CLUSTER) == "true"

    @property
    def cluster_id(self) -> str:
        """Return the cluster id from its label, its id claim or its name."""
        if (val := self.labels.get(LABEL_CLUSTER_ID)) is not None:
            return val
        if (val := self.cluster_claims.get(CLAIM_CLUSTER_ID)) is not None:
            return val
        return self.name

    @property
    def cluster_set(self) -> str | None:
        return self.labels.get(LABEL_CLUSTER_SET)


@dataclass
class ManifestWork(BaseManifest):
    """A per-cluster delivery envelope of embedded manifests."""

    kind: ClassVar[str] = MANIFEST_WORK_KIND

    name: str
    namespace: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    manifests: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ManifestWork":
        """Parse a ManifestWork from a kubernetes resource object."""
        _check_kind(doc, cls.kind)
        metadata = _metadata(doc, cls)
        if not (namespace := metadata.get("namespace")):
            raise ConfigurationError(f"Invalid {cls.__name__} missing metadata.namespace: {doc}")
        workload = (doc.get("spec") or {}).get("workload") or {}
        return cls(
            name=metadata["name"],
            namespace=namespace,
            labels=dict(metadata.get("labels") or {}),
            annotations=dict(metadata.get("annotations") or {}),
            manifests=list(workload.get("manifests") or []),
        )

    @property
    def envelope_key(self) -> EnvelopeKey:
        return EnvelopeKey(namespace=self.namespace, name=self.name)

    def find_manifest(self, key: ConfigKey) -> dict[str, Any] | None:
        """Return the embedded manifest copied from the object of the key."""
        for manifest in self.manifests:
            if source_key(manifest) == key:
                return manifest
        return None


@dataclass
class ConfigMap(BaseManifest):
    """A ConfigMap is an API object used to store data in key-value pairs."""

    kind: ClassVar[str] = CONFIG_MAP_KIND

    name: str
    namespace: str | None = None
    data: dict[str, Any] | None = None
    annotations: dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ConfigMap":
        """Parse a config map object from a kubernetes resource."""
        _check_kind(doc, cls.kind)
        metadata = _metadata(doc, cls)
        return cls(
            name=metadata["name"],
            namespace=metadata.get("namespace"),
            data=doc.get("data"),
            annotations=dict(metadata.get("annotations") or {}),
        )


@dataclass
class Secret(BaseManifest):
    """A Secret contains a small amount of sensitive data."""

    kind: ClassVar[str] = SECRET_KIND

    name: str
    namespace: str | None = None
    data: dict[str, str] | None = None
    """Base64 encoded values, as on the wire."""

    type: str | None = None
    annotations: dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Secret":
        """Parse a secret object from a kubernetes resource."""
        _check_kind(doc, cls.kind)
        metadata = _metadata(doc, cls)
        return cls(
            name=metadata["name"],
            namespace=metadata.get("namespace"),
            data=doc.get("data"),
            type=doc.get("type"),
            annotations=dict(metadata.get("annotations") or {}),
        )


def new_object(
    kind: str,
    name: str,
    namespace: str | None = None,
    *,
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
    **body: Any,
) -> dict[str, Any]:
    """Build a raw kubernetes object of a known kind."""
    metadata: dict[str, Any] = {"name": name}
    if namespace and kind not in CLUSTER_SCOPED_KINDS:
        metadata["namespace"] = namespace
    if labels:
        metadata["labels"] = dict(labels)
    if annotations:
        metadata["annotations"] = dict(annotations)
    return {
        "apiVersion": API_VERSIONS[kind],
        "kind": kind,
        "metadata": metadata,
        **body,
    }
