#!/usr/bin/env python3
"""
kopia-exec: run kopia by hand with the wrapper's environment
Loads the kopia environment file named in the wrapper config and replaces this process with kopia
"""
import argparse
import os
import sys
from typing import List, Optional

from config import ConfigError, WrapperConfig

EXIT_CONFIG_ERROR = 1
EXIT_EXEC_FAILED = 127


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kopia-exec",
        description="Execute kopia with the environment variables from the kopia-wrapper configuration.",
        usage="%(prog)s [-c CONFIG] [--] kopia-args...",
    )
    parser.add_argument("-c", "--config", help="path to kopia-wrapper.yaml")
    parser.add_argument("kopia_args", nargs=argparse.REMAINDER, help="arguments passed to kopia")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = WrapperConfig(args.config)
        kopia_env = config.kopia_environment()
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    kopia_args = list(args.kopia_args)
    if kopia_args and kopia_args[0] == "--":
        kopia_args = kopia_args[1:]

    env = os.environ.copy()
    env.update(kopia_env)
    command = [config.settings.kopia.executable, *kopia_args]

    sys.stdout.flush()
    sys.stderr.flush()
    try:
        os.execvpe(command[0], command, env)
    except OSError as e:
        print(f"ERROR: Could not execute {command[0]}: {e}", file=sys.stderr)
        return EXIT_EXEC_FAILED
    return EXIT_EXEC_FAILED


if __name__ == "__main__":
    sys.exit(main())
