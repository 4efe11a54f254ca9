"""Materialisation of per-target credentials."""

import logging

from mcoa_addon.client import Client
from mcoa_addon.exceptions import (
    ConfigurationError,
    MissingPreconditionError,
    ObjectNotFoundError,
)
from mcoa_addon.manifest import (
    ANNOTATION_TARGET_OUTPUT_NAME,
    CRD_KIND,
    SECRET_KIND,
    ConfigKey,
    Secret,
)
from mcoa_addon.mutate import OperationResult, create_or_update

from .const import (
    ANNOTATION_AUTH_PREFIX,
    CERT_MANAGER_CRDS,
    AuthenticationType,
    CredentialHandle,
    Target,
)
from .manifests import (
    AuthConfig,
    build_certificate,
    build_managed_secret,
    build_root_issuer_objects,
    build_static_secret,
    inject_ca,
)

_LOGGER = logging.getLogger(__name__)


def build_authentication_from_annotations(
    annotations: dict[str, str],
) -> dict[Target, AuthenticationType]:
    """Parse the authentication annotations of an object into a target map.

    Each annotation `authentication.mcoa.openshift.io/<target>` names exactly
    one target. Other annotations are ignored.
    """
    result: dict[Target, AuthenticationType] = {}
    for annotation, value in annotations.items():
        if not annotation.startswith(ANNOTATION_AUTH_PREFIX):
            continue
        target = annotation[len(ANNOTATION_AUTH_PREFIX) :]
        if not target or "/" in target:
            raise ConfigurationError(
                f"Unable to extract target name from annotation '{annotation}'"
            )
        try:
            result[target] = AuthenticationType(value)
        except ValueError as err:
            raise ConfigurationError(
                f"Unsupported authentication type '{value}' in annotation '{annotation}'"
            ) from err
    return result


class SecretsProvider:
    """Ensures the credential objects of the targets of one signal.

    All objects are written in the namespace of the cluster. Repeated calls
    with identical inputs do not modify any object after the first success.
    """

    def __init__(
        self, client: Client, cluster_name: str, signal: str, config: AuthConfig
    ) -> None:
        """Initialize SecretsProvider."""
        self._client = client
        self._cluster_name = cluster_name
        self._signal = signal
        self._config = config
        self.source_keys: set[ConfigKey] = set()
        """Keys of the secrets copied by Static targets, by their source identity."""

    def handle_for(self, target: Target) -> CredentialHandle:
        """Return the deterministic location of the generated object of a target."""
        return CredentialHandle(
            name=f"{self._signal}-{target}-auth", namespace=self._cluster_name
        )

    async def generate_secrets(
        self, target_auth: dict[Target, AuthenticationType]
    ) -> dict[Target, CredentialHandle | None]:
        """Ensure a credential object exists for each target.

        Returns the handle of the credential of each target, None for targets
        whose credentials are not materialised. The secrets copied for Static
        targets are recorded in source_keys.
        """
        handles: dict[Target, CredentialHandle | None] = {}
        objects = []
        mtls_targets = []
        for target, auth_type in sorted(target_auth.items()):
            handle = self.handle_for(target)
            if auth_type == AuthenticationType.STATIC:
                source_handle = await self.discover_secret(target)
                self.source_keys.add(
                    ConfigKey(
                        group="",
                        kind=SECRET_KIND,
                        namespace=source_handle.namespace,
                        name=source_handle.name,
                    )
                )
                source = await self._get_secret(source_handle)
                objects.append(
                    build_static_secret(
                        handle,
                        source,
                        self._config.owner_labels,
                        self._config.owner_references,
                    )
                )
            elif auth_type == AuthenticationType.MANAGED:
                objects.append(
                    build_managed_secret(
                        handle, self._config.owner_labels, self._config.owner_references
                    )
                )
            elif auth_type == AuthenticationType.MTLS:
                objects.append(
                    build_certificate(
                        handle.name,
                        handle.namespace,
                        self._config.mtls,
                        self._config.owner_labels,
                        self._config.owner_references,
                    )
                )
                # The issuer writes the certificate into a secret named after the namespace
                handle = CredentialHandle(
                    name=self._cluster_name, namespace=self._cluster_name
                )
                mtls_targets.append(target)
            elif auth_type == AuthenticationType.SECRET_REFERENCE:
                handle = await self.discover_secret(target)
            elif auth_type == AuthenticationType.MCO:
                _LOGGER.debug("MCO authentication is not materialised for %s", target)
                handles[target] = None
                continue
            handles[target] = handle

        if mtls_targets:
            await check_cert_manager_crds(self._client)

        for obj in objects:
            await create_or_update(self._client, obj)

        for target in mtls_targets:
            await self._inject_ca(handles[target])
        return handles

    async def fetch_secrets(
        self,
        handles: dict[Target, CredentialHandle | None],
        target_annotation: str = ANNOTATION_TARGET_OUTPUT_NAME,
    ) -> dict[Target, Secret]:
        """Read back the credentials of each target.

        The returned secrets are annotated with their target to preserve the
        link between them. Credentials not yet populated are skipped.
        """
        result: dict[Target, Secret] = {}
        for target, handle in sorted(handles.items()):
            if handle is None:
                continue
            try:
                secret = await self._get_secret(handle)
            except ObjectNotFoundError:
                _LOGGER.debug("Credentials %s of target %s not yet available", handle, target)
                continue
            secret.annotations[target_annotation] = target
            result[target] = secret
        return result

    async def discover_secret(self, name: str) -> CredentialHandle:
        """Locate a secret in the cluster namespace, then the default namespace."""
        if not self._config.default_namespace:
            raise ConfigurationError(
                f"Unable to discover secret '{name}': default namespace is not configured"
            )
        for namespace in (self._cluster_name, self._config.default_namespace):
            try:
                await self._client.get(SECRET_KIND, namespace, name)
            except ObjectNotFoundError:
                continue
            return CredentialHandle(name=name, namespace=namespace)
        raise ObjectNotFoundError(
            f"Secret '{name}' not found in namespace '{self._cluster_name}' "
            f"or '{self._config.default_namespace}'"
        )

    async def _get_secret(self, handle: CredentialHandle) -> Secret:
        return Secret.parse_doc(
            await self._client.get(SECRET_KIND, handle.namespace, handle.name)
        )

    async def _inject_ca(self, handle: CredentialHandle | None) -> None:
        if not self._config.mtls.ca_to_inject or handle is None:
            return
        try:
            secret = await self._client.get(SECRET_KIND, handle.namespace, handle.name)
        except ObjectNotFoundError:
            _LOGGER.debug("Secret %s not yet issued, skipping CA injection", handle)
            return
        desired = inject_ca(secret, self._config.mtls.ca_to_inject)
        if await create_or_update(self._client, desired) != OperationResult.UNCHANGED:
            _LOGGER.info("Injected CA into secret %s", handle)


async def check_cert_manager_crds(client: Client) -> None:
    """Raise MissingPreconditionError unless all cert-manager CRDs are installed."""
    missing = []
    for crd_name in CERT_MANAGER_CRDS:
        try:
            await client.get(CRD_KIND, None, crd_name)
        except ObjectNotFoundError:
            missing.append(crd_name)
    if missing:
        raise MissingPreconditionError(
            f"cert-manager CRDs are missing: {', '.join(missing)}", missing
        )


async def ensure_root_issuer(client: Client, cluster_issuer_name: str) -> None:
    """Install the self signed CA chain backing the cluster issuer."""
    await check_cert_manager_crds(client)
    for obj in build_root_issuer_objects(cluster_issuer_name):
        await create_or_update(client, obj)
