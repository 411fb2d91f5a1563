#  Copyright 2024 Red Hat, Inc.
#
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence

from trap_insights.config import Settings
from trap_insights.definitions import load_definition_files
from trap_insights.dispatch import DispatchLoop, install_signal_handlers
from trap_insights.errors import TrapInsightsError
from trap_insights.insights import InsightsClient
from trap_insights.processor import TrapProcessor
from trap_insights.receiver import TrapReceiver
from trap_insights.registry import DispatchRegistry
from trap_insights.session import connect, disconnect

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%d-%m-%Y %H:%M:%S"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Receive SNMP traps and forward them to New Relic Insights.",
    )
    parser.add_argument(
        "--config_file",
        default="config.yml",
        help="location of config.yml configuration file",
    )
    parser.add_argument("--verbose", action="store_true", help="verbose logging")
    return parser.parse_args(argv)


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )


def build_registry(settings: Settings) -> DispatchRegistry:
    """Seed the registry, load the definition files and freeze it."""
    registry = DispatchRegistry.with_builtins(settings.event_type, settings.snmp_device)
    if not settings.trap_definition_files:
        logger.warning("Trap configuration files not specified")
    else:
        registry.register_all(load_definition_files(settings.trap_definition_files))
    registry.freeze()
    return registry


async def serve(settings: Settings, verbose: bool = False) -> None:
    """Run the trap receiver until SIGINT or SIGTERM."""
    settings.apply_proxy()
    registry = build_registry(settings)

    client = InsightsClient(settings.account_id, settings.insert_key, settings.nr_region)
    logger.info("Insights account %s, region %s", settings.account_id, settings.nr_region)

    processor = TrapProcessor(
        registry,
        community=settings.community,
        default_event_type=settings.event_type,
        default_device=settings.snmp_device,
        drop_undeclared_traps=settings.drop_undeclared_traps,
        verbose=verbose,
    )
    receiver = TrapReceiver(processor, client)
    dispatch_loop = DispatchLoop(client)

    try:
        session = await connect(
            settings.snmp_host,
            settings.snmp_port,
            settings.security(),
            receiver,
        )
        try:
            install_signal_handlers(dispatch_loop)
            await dispatch_loop.run()
        finally:
            disconnect(session)
    finally:
        receiver.close()
        await client.close()


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = Settings.from_file(args.config_file)
    except TrapInsightsError as exc:
        logger.error("%s", exc)
        return 1

    try:
        asyncio.run(serve(settings, verbose=args.verbose))
    except TrapInsightsError as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
