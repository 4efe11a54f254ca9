"""Authentication engine materialising the credentials of signal targets.

Targets request a kind of authentication through annotations of the form
`authentication.mcoa.openshift.io/<target>`. The provider then ensures an
object exists per target and returns a handle to the credentials, never the
credential bytes themselves.
"""

from .const import (
    ANNOTATION_AUTH_PREFIX,
    AuthenticationType,
    CredentialHandle,
    Target,
)
from .manifests import AuthConfig, MTLSConfig, build_root_issuer_objects
from .provider import (
    SecretsProvider,
    build_authentication_from_annotations,
    check_cert_manager_crds,
    ensure_root_issuer,
)

__all__ = [
    "ANNOTATION_AUTH_PREFIX",
    "AuthenticationType",
    "AuthConfig",
    "CredentialHandle",
    "MTLSConfig",
    "SecretsProvider",
    "Target",
    "build_authentication_from_annotations",
    "build_root_issuer_objects",
    "check_cert_manager_crds",
    "ensure_root_issuer",
]
