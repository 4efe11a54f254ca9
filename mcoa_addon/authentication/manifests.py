"""Builders for the objects materialising credentials."""

import base64
from collections.abc import Sequence
import copy
from dataclasses import dataclass, field
from typing import Any

from mcoa_addon.manifest import (
    CERTIFICATE_KIND,
    CLUSTER_ISSUER_KIND,
    ISSUER_KIND,
    SECRET_KIND,
    Secret,
    new_object,
)

from .const import (
    CA_KEY,
    CERT_MANAGER_NAMESPACE,
    DEFAULT_CLUSTER_ISSUER_NAME,
    MANAGED_PLACEHOLDER,
    ROOT_CERT_NAME,
    ROOT_ISSUER_NAME,
    CredentialHandle,
)

OPAQUE_SECRET_TYPE = "Opaque"


@dataclass(frozen=True)
class MTLSConfig:
    """Signal specific fields of the client certificates requested for mTLS."""

    common_name: str = ""
    dns_names: tuple[str, ...] = ()
    organizations: tuple[str, ...] = ()
    """Organizations of the X.509 subject."""

    cluster_issuer_name: str = DEFAULT_CLUSTER_ISSUER_NAME
    ca_to_inject: str = ""
    """PEM encoded CA added to mTLS secrets, not injected when empty."""


def _encode(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


def _owned(
    obj: dict[str, Any], owner_references: Sequence[dict[str, Any]] | None
) -> dict[str, Any]:
    if owner_references:
        obj["metadata"]["ownerReferences"] = copy.deepcopy(list(owner_references))
    return obj


def build_static_secret(
    handle: CredentialHandle,
    source: Secret,
    labels: dict[str, str] | None = None,
    owner_references: Sequence[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Build a copy of the payload of a source secret."""
    obj = new_object(
        SECRET_KIND,
        handle.name,
        handle.namespace,
        labels=labels,
        data=dict(source.data or {}),
        type=source.type or OPAQUE_SECRET_TYPE,
    )
    return _owned(obj, owner_references)


def build_managed_secret(
    handle: CredentialHandle,
    labels: dict[str, str] | None = None,
    owner_references: Sequence[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Build the placeholder secret filled in by a federated identity sidecar."""
    obj = new_object(
        SECRET_KIND,
        handle.name,
        handle.namespace,
        labels=labels,
        data={
            "roleARN": _encode(MANAGED_PLACEHOLDER),
            "webIdentityToken": _encode(MANAGED_PLACEHOLDER),
        },
        type=OPAQUE_SECRET_TYPE,
    )
    return _owned(obj, owner_references)


def build_certificate(
    name: str,
    namespace: str,
    config: MTLSConfig,
    labels: dict[str, str] | None = None,
    owner_references: Sequence[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Build a client Certificate request addressed to the cluster issuer.

    The issuer writes the signed certificate into a secret named after the
    cluster namespace.
    """
    spec: dict[str, Any] = {
        "secretName": namespace,
        "commonName": config.common_name,
        "dnsNames": list(config.dns_names),
        "privateKey": {
            "algorithm": "RSA",
            "encoding": "PKCS8",
            "size": 4096,
        },
        "usages": ["client auth", "key encipherment", "digital signature"],
        "issuerRef": {
            "kind": CLUSTER_ISSUER_KIND,
            "name": config.cluster_issuer_name,
        },
    }
    if config.organizations:
        spec["subject"] = {"organizations": list(config.organizations)}
    return _owned(
        new_object(CERTIFICATE_KIND, name, namespace, labels=labels, spec=spec),
        owner_references,
    )


def build_root_issuer_objects(
    cluster_issuer_name: str = DEFAULT_CLUSTER_ISSUER_NAME,
) -> list[dict[str, Any]]:
    """Build the self signed CA chain backing the cluster issuer."""
    issuer = new_object(
        ISSUER_KIND,
        ROOT_ISSUER_NAME,
        CERT_MANAGER_NAMESPACE,
        spec={"selfSigned": {}},
    )
    cert = new_object(
        CERTIFICATE_KIND,
        ROOT_CERT_NAME,
        CERT_MANAGER_NAMESPACE,
        spec={
            "isCA": True,
            "secretName": ROOT_CERT_NAME,
            "commonName": "MCOA Root Certificate",
            "privateKey": {
                "algorithm": "RSA",
                "encoding": "PKCS8",
                "size": 4096,
            },
            "issuerRef": {"kind": ISSUER_KIND, "name": ROOT_ISSUER_NAME},
        },
    )
    cluster_issuer = new_object(
        CLUSTER_ISSUER_KIND,
        cluster_issuer_name,
        spec={"ca": {"secretName": ROOT_CERT_NAME}},
    )
    return [issuer, cert, cluster_issuer]


def inject_ca(secret: dict[str, Any], ca: str) -> dict[str, Any]:
    """Return a copy of the secret carrying the CA bundle."""
    result = copy.deepcopy(secret)
    result["data"] = {**(result.get("data") or {}), CA_KEY: _encode(ca)}
    return result


@dataclass(frozen=True)
class AuthConfig:
    """Configuration of the secrets provider for a signal."""

    owner_labels: dict[str, str] = field(default_factory=dict)
    """Labels set on every generated object."""

    owner_references: tuple[dict[str, Any], ...] = ()
    """Owner references set on every generated object, tying it to the addon."""

    mtls: MTLSConfig = field(default_factory=MTLSConfig)

    default_namespace: str = ""
    """Namespace searched for static credentials missing from the cluster namespace."""
