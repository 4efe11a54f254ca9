"""Configuration objects for the addon manager."""

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import cast

import aiofiles
from mashumaro.exceptions import MissingField, InvalidFieldValue

from .authentication.const import DEFAULT_CLUSTER_ISSUER_NAME
from .exceptions import ConfigurationError
from .manifest import ADDON_NAME, INSTALL_NAMESPACE, BaseManifest

_LOGGER = logging.getLogger(__name__)


@dataclass
class AddonConfig(BaseManifest):
    """Configuration for the AddonManager."""

    addon_name: str = ADDON_NAME
    """Name of the addon, also the value of the addon-name label of its envelopes."""

    install_namespace: str = INSTALL_NAMESPACE
    """Namespace of the addon on the hub."""

    default_namespace: str = INSTALL_NAMESPACE
    """Namespace searched for static credentials missing from a cluster namespace."""

    cluster_issuer_name: str = DEFAULT_CLUSTER_ISSUER_NAME
    """ClusterIssuer signing the client certificates of mTLS targets."""

    ca_to_inject: str = ""
    """PEM encoded CA injected in mTLS secrets, disabled when empty."""

    bootstrap_issuer: bool = False
    """Install the self signed CA chain backing the cluster issuer on start."""

    workers: int = 4
    """Number of reconcile requests processed concurrently."""

    requeue_delay: float = 5.0
    """Seconds to wait before retrying a failed reconcile request."""


async def read_config(config_path: Path) -> AddonConfig:
    """Return the contents of a serialized configuration file."""
    async with aiofiles.open(str(config_path)) as config_file:
        content = await config_file.read()
    if not content.strip():
        return AddonConfig()
    try:
        config = cast(AddonConfig, AddonConfig.parse_yaml(content))
    except (MissingField, InvalidFieldValue, ValueError) as err:
        raise ConfigurationError(f"Invalid configuration file {config_path}: {err}") from err
    if config.workers < 1:
        raise ConfigurationError(f"Invalid configuration file {config_path}: workers must be positive")
    _LOGGER.debug("Loaded configuration %s", config)
    return config
