"""mcoa-addon reconcile action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
from typing import Any, cast

import aiofiles
import yaml

from mcoa_addon.client import InMemoryClient
from mcoa_addon.config import AddonConfig, read_config
from mcoa_addon.exceptions import ConfigurationError
from mcoa_addon.manager import AddonManager
from mcoa_addon.manifest import LABEL_ADDON_NAME, MANIFEST_WORK_KIND

_LOGGER = logging.getLogger(__name__)

YAML_SUFFIXES = (".yaml", ".yml")


async def load_objects(path: pathlib.Path) -> list[dict[str, Any]]:
    """Load the kubernetes objects of a YAML file or a directory of YAML files."""
    if path.is_dir():
        files = sorted(p for p in path.rglob("*") if p.suffix in YAML_SUFFIXES)
    elif path.exists():
        files = [path]
    else:
        raise ConfigurationError(f"Path does not exist: {path}")

    objects: list[dict[str, Any]] = []
    for file in files:
        async with aiofiles.open(str(file)) as stream:
            content = await stream.read()
        try:
            docs = list(yaml.safe_load_all(content))
        except yaml.YAMLError as err:
            raise ConfigurationError(f"Unable to parse {file}: {err}") from err
        for doc in docs:
            if not doc:
                continue
            if not isinstance(doc, dict) or "kind" not in doc or "metadata" not in doc:
                raise ConfigurationError(f"Invalid kubernetes object in {file}: {doc}")
            objects.append(doc)
    _LOGGER.debug("Loaded %d objects from %d files", len(objects), len(files))
    return objects


class ReconcileAction:
    """mcoa-addon reconcile action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "reconcile",
                help="Reconcile the addon against a local set of hub objects",
                description="""Loads the hub objects from YAML files into an in
                    memory API, reconciles every installation of the addon and
                    prints the resulting ManifestWorks.""",
            ),
        )
        args.add_argument(
            "path",
            type=pathlib.Path,
            help="Path to a YAML file or a directory of YAML files",
        )
        args.add_argument(
            "--config",
            type=pathlib.Path,
            default=None,
            help="Path to the addon manager configuration file",
        )
        args.add_argument(
            "--output-file",
            type=str,
            default="/dev/stdout",
            help="Output file for the results of the command",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        path: pathlib.Path,
        config: pathlib.Path | None,
        output_file: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        addon_config = await read_config(config) if config else AddonConfig()
        client = InMemoryClient(await load_objects(path))

        manager = AddonManager(client, addon_config)
        await manager.start()
        try:
            await manager.block_till_done()
        finally:
            await manager.stop()

        works = await client.list(
            MANIFEST_WORK_KIND, labels={LABEL_ADDON_NAME: addon_config.addon_name}
        )
        _LOGGER.info("Reconciled %d ManifestWorks", len(works))
        with open(output_file, "w") as file:
            yaml.dump_all(works, file, sort_keys=False, explicit_start=True)
