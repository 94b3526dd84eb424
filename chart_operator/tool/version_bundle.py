"""Chart-operator version-bundle action."""

from argparse import (
    ArgumentParser,
    _SubParsersAction as SubParsersAction,
)
from typing import cast

from chart_operator.project import version_bundle


class VersionBundleAction:
    """Chart-operator version-bundle action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "version-bundle",
                help="Print the version bundle of this release",
                description="Print the version bundle used to sequence upgrades.",
            ),
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        print(version_bundle().yaml(), end="")
