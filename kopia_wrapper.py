#!/usr/bin/env python3
"""
kopia-wrapper command line entry point
Runs kopia snapshots and maintenance once, captures the output and sends a notification
"""
import argparse
import logging
import sys
from typing import List, Optional

from config import ConfigError, WrapperConfig
from models.run import OPERATION_HELP, Operation
from services.command_execution_service import CommandExecutionService
from services.kopia_runner import KopiaRunner
from services.notification_service import NotificationService
from services.operation_sequencer import OperationSequencer
from services.output_capture import OutputCaptureSink
from services.process_lock import LockUnavailableError, ProcessLockGuard, describe_conflict
from services.wrapper_run import WrapperRun

VERSION = "1.0.0"
PROG = "kopia-wrapper"

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_LOCKED = 1
EXIT_USAGE = 2
EXIT_COMMANDS_FAILED = 3


def configure_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    operations = "\n".join(f"  {op.value:<18} {OPERATION_HELP[op]}" for op in Operation)
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="Run kopia snapshots and repository maintenance, then send a notification "
                    "with a command summary and the captured output.",
        epilog=f"operations (run in the order given, repeats allowed):\n{operations}\n\n"
               f"Exit status is 0 when the run completes, even if kopia commands failed; "
               f"failures are reported in the notification.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-c", "--config", help="path to kopia-wrapper.yaml "
                                               "(default: $KOPIA_WRAPPER_CONFIG or /etc/kopia-wrapper/kopia-wrapper.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("operations", nargs="+", choices=Operation.choices(), metavar="operation",
                        help="one or more of: " + ", ".join(Operation.choices()))
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    operations = [Operation(value) for value in args.operations]

    try:
        config = WrapperConfig(args.config)
        kopia_env = config.kopia_environment()
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    settings = config.settings
    sequencer = OperationSequencer(
        KopiaRunner(settings.kopia),
        CommandExecutionService(settings.kopia.executable, kopia_env),
    )
    run = WrapperRun(
        ProcessLockGuard(config.lock_path),
        OutputCaptureSink(settings.log_dir),
        NotificationService(settings.notify),
    )

    try:
        with run as context:
            print(f"INFO: {PROG} {VERSION} starting: {' '.join(op.value for op in operations)}", flush=True)
            sequencer.run(operations, context)
            print(f"INFO: {PROG} finished: {context.final_status}", flush=True)
    except LockUnavailableError as e:
        print(describe_conflict(PROG, sys.argv[0], e.lock_path), file=sys.stderr)
        return EXIT_LOCKED

    if settings.propagate_command_failures and run.context.failed:
        return EXIT_COMMANDS_FAILED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
