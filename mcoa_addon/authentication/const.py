"""Constants and types for the authentication package."""

from dataclasses import dataclass
from enum import Enum


class AuthenticationType(str, Enum):
    """How the credentials of a target are materialised."""

    STATIC = "Static"
    """Copy of an administrator provided secret."""

    MANAGED = "Managed"
    """Placeholder secret filled in by a federated identity sidecar."""

    MTLS = "mTLS"
    """Client certificate requested from the issuer."""

    MCO = "MCO"
    """Reserved, credentials are not materialised."""

    SECRET_REFERENCE = "SecretReference"
    """An existing secret used as is."""


Target = str
"""The name of an output of a signal pipeline."""


@dataclass(frozen=True, order=True)
class CredentialHandle:
    """Locator of a materialised credential object."""

    name: str
    namespace: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


ANNOTATION_AUTH_PREFIX = "authentication.mcoa.openshift.io/"

CA_KEY = "ca-bundle.crt"

CERT_MANAGER_CRDS = (
    "certificates.cert-manager.io",
    "issuers.cert-manager.io",
    "clusterissuers.cert-manager.io",
)

CERT_MANAGER_NAMESPACE = "cert-manager"
ROOT_ISSUER_NAME = "mcoa-bootstrap-issuer"
ROOT_CERT_NAME = "mcoa-root-certificate"
DEFAULT_CLUSTER_ISSUER_NAME = "mcoa-cluster-issuer"

MANAGED_PLACEHOLDER = "foo"
