"""Chart-operator run action."""

from argparse import (
    ArgumentParser,
    _SubParsersAction as SubParsersAction,
)
import asyncio
import logging
from typing import cast

import uvicorn

from chart_operator.controller import ChartController
from chart_operator.exceptions import ChartOperatorException
from chart_operator.healthz import create_app
from chart_operator.kubernetes import KubernetesClient

from . import options

_LOGGER = logging.getLogger(__name__)


async def resync(controller: ChartController, kubernetes: KubernetesClient) -> None:
    """Read the Chart resources from the cluster and queue them."""
    try:
        docs = await kubernetes.list_charts()
    except ChartOperatorException as err:
        # Tried again on the next resync.
        _LOGGER.warning("Unable to list Charts: %s", err)
        return
    accepted = controller.sync(docs)
    _LOGGER.debug("Resynced %d of %d Charts", accepted, len(docs))


class RunAction:
    """Chart-operator run action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "run",
                help="Run the operator against the cluster",
                description="""Continuously reconcile the Chart resources in the
                    cluster and serve a health endpoint until interrupted.""",
            ),
        )
        options.add_cluster_flags(args)
        options.add_server_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        config = options.build_config(**kwargs)
        server = uvicorn.Server(
            uvicorn.Config(
                create_app(),
                host=config.health_host,
                port=config.health_port,
                log_level="warning",
            )
        )
        with options.create_controller(config) as (controller, kubectl):
            controller.start()
            serve = asyncio.create_task(server.serve())
            try:
                while not serve.done():
                    await resync(controller, kubectl)
                    await asyncio.wait([serve], timeout=config.resync_period)
            finally:
                server.should_exit = True
                await controller.close()
                await serve
        _LOGGER.info("Stopped")
