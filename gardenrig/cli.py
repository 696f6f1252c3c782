from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal

from gardenrig.config import load_config, setup_logging
from gardenrig.controller import create_controller
from gardenrig.domain.exceptions import GardenRigError
from gardenrig.services.history_store import MOISTURE_HISTORY, SAFETY_SHUTDOWN_LOG
from infrastructure.persistence.json_store import JsonFileStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gardenrig-controller", description="Garden rig drip irrigation controller")
    parser.add_argument("--log-level", default=None, help="Override GARDENRIG_LOG_LEVEL (DEBUG, INFO, ...)")
    parser.add_argument("--data-dir", default=None, help="Directory for history snapshots (default: var)")
    parser.add_argument("--skip-self-test", action="store_true", help="Start the cycles without the device self-test")
    parser.add_argument("--mock-gpio", action="store_true", help="Use in-memory pins instead of RPi.GPIO")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("run", help="Run the controller (default)")
    subparsers.add_parser("self-test", help="Exercise every device once and exit")
    show = subparsers.add_parser("show-history", help="Print the persisted history snapshots")
    show.add_argument("name", nargs="?", choices=[MOISTURE_HISTORY, SAFETY_SHUTDOWN_LOG], default=MOISTURE_HISTORY)
    return parser


async def _run(controller, skip_self_test: bool) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, controller.request_stop)
        except NotImplementedError:
            # Windows: KeyboardInterrupt still stops asyncio.run
            pass

    if not skip_self_test:
        await controller.self_test()
    await controller.run()


async def _self_test(controller) -> int:
    try:
        results = await controller.self_test()
    finally:
        await controller.shutdown()
    print(json.dumps(results, indent=2))
    return 0 if all(result in ("ok", "skipped") for result in results.values()) else 1


def main(argv: list[str] | None = None) -> int:
    """Run the controller until SIGINT/SIGTERM."""
    args = build_parser().parse_args(argv)

    overrides = {}
    if args.data_dir:
        overrides["data_dir"] = args.data_dir
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.mock_gpio:
        overrides["use_mock_gpio"] = True

    try:
        config = load_config(overrides)
    except GardenRigError as e:
        print(f"Invalid configuration: {e}")
        return 2

    if args.command == "show-history":
        try:
            data = JsonFileStore(config.data_dir).load(args.name)
        except GardenRigError as e:
            print(f"Cannot read {args.name}: {e}")
            return 1
        print(json.dumps(data, indent=2) if data is not None else f"No {args.name} snapshot in {config.data_dir}")
        return 0

    setup_logging(debug=config.debug, log_path=config.log_path, level=config.log_level)

    try:
        controller = create_controller(config)
    except GardenRigError as e:
        logger.error("Controller failed to start: %s", e, extra={"detail": e.detail})
        return 1

    if args.command == "self-test":
        return asyncio.run(_self_test(controller))

    try:
        asyncio.run(_run(controller, args.skip_self_test))
    except KeyboardInterrupt:
        logger.info("Stopping controller...")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
