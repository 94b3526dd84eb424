"""Chart-operator reconcile action."""

from argparse import (
    ArgumentParser,
    BooleanOptionalAction,
    _SubParsersAction as SubParsersAction,
)
import logging
import pathlib
import sys
from typing import Any, cast

from chart_operator.controller import InMemoryStatusStore, Status
from chart_operator.exceptions import InputException

from . import options
from .format import PrintFormatter, YamlFormatter

_LOGGER = logging.getLogger(__name__)

COLUMNS = ["key", "status", "kind", "reason"]


class ReconcileAction:
    """Chart-operator reconcile action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "reconcile",
                help="Migrate charts to native Helm releases and wait for the outcome",
                description="""Reconcile each Chart until it is migrated, in
                    conflict with an existing release, or failed. Transient
                    errors are retried with backoff before giving up.""",
            ),
        )
        args.add_argument(
            "files",
            help="Yaml files with Chart custom resources",
            type=pathlib.Path,
            nargs="*",
        )
        args.add_argument(
            "--from-cluster",
            type=bool,
            action=BooleanOptionalAction,
            default=False,
            help="Reconcile the Chart custom resources in the cluster",
        )
        args.add_argument(
            "--output",
            "-o",
            choices=["table", "yaml"],
            default="table",
            help="Output format of the outcomes",
        )
        options.add_cluster_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        files: list[pathlib.Path],
        from_cluster: bool,
        output: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        if not files and not from_cluster:
            raise InputException(
                "No Chart files given, use --from-cluster to read them"
            )
        config = options.build_config(**kwargs)
        docs = options.read_charts(files)

        # Only Charts read from the cluster have a resource to write status to.
        status = None if from_cluster else InMemoryStatusStore()
        with options.create_controller(config, status) as (controller, kubectl):
            if from_cluster:
                docs.extend(await kubectl.list_charts())
            accepted = controller.sync(docs)
            _LOGGER.info("Reconciling %d charts", accepted)
            controller.start()
            try:
                await controller.wait_settled()
            finally:
                await controller.close()
            results = controller.status.items()

        if not results:
            print("no Chart objects found")
            return
        rows: list[dict[str, Any]] = [
            {
                "key": key,
                "status": str(info.status),
                "kind": str(info.kind or ""),
                "reason": info.reason or "",
            }
            for key, info in results
        ]
        if output == "yaml":
            YamlFormatter().print(rows)
        else:
            PrintFormatter(COLUMNS).print(rows)

        if any(info.status != Status.READY for _, info in results):
            sys.exit(1)
