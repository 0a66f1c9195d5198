#!/usr/bin/env python3
"""
Kopia action: dump the Virtualmin (Webmin) MySQL databases
Rotates previous dumps, then pipes mysqldump through a compressor into the dump directory
"""
import argparse
import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import Dict, List, Optional

from config import ConfigError, WrapperConfig
from models.settings import MysqlDumpSettings

logger = logging.getLogger(__name__)

EXIT_SETUP_FAILED = 1


class WebminCredentialsError(Exception):
    """Webmin MySQL config is missing or lacks login/pass"""


def read_webmin_credentials(config_path: Path) -> Dict[str, str]:
    """Read login= and pass= from the webmin MySQL module config"""
    try:
        lines = Path(config_path).read_text().splitlines()
    except OSError as e:
        raise WebminCredentialsError(f"Could not read webmin MySQL config {config_path}: {e}") from e

    values = {}
    for line in lines:
        key, sep, value = line.partition("=")
        if sep and key in ("login", "pass") and key not in values:
            values[key] = value
    if "login" not in values or "pass" not in values:
        raise WebminCredentialsError(f"No login/pass entries in webmin MySQL config {config_path}")
    return values


def rotate_dumps(dump_path: Path, rotations: int):
    """file.N-1 -> file.N ... file -> file.1; oldest beyond `rotations` is overwritten"""
    if rotations <= 0 or not dump_path.exists():
        return
    for index in range(rotations - 1, 0, -1):
        older = dump_path.with_name(f"{dump_path.name}.{index}")
        if older.exists():
            older.replace(dump_path.with_name(f"{dump_path.name}.{index + 1}"))
    dump_path.replace(dump_path.with_name(f"{dump_path.name}.1"))


def ensure_dump_dir(dump_dir: Path, mode: int):
    if not dump_dir.is_dir():
        dump_dir.mkdir(parents=True)
        dump_dir.chmod(mode)


class MysqlDumpAction:
    """Dump all databases to a compressed, rotated file"""

    def __init__(self, settings: MysqlDumpSettings):
        self.settings = settings

    @property
    def dump_path(self) -> Path:
        return Path(self.settings.dump_dir) / self.settings.dump_file

    def run(self) -> int:
        """Returns mysqldump's exit code; setup problems raise"""
        ensure_dump_dir(Path(self.settings.dump_dir), self.settings.dump_dir_mode)
        credentials = read_webmin_credentials(Path(self.settings.webmin_config))
        rotate_dumps(self.dump_path, self.settings.rotations)
        return self.dump(credentials)

    def dump(self, credentials: Dict[str, str]) -> int:
        dump_command = self.dump_command(credentials["login"])
        # MYSQL_PWD keeps the password off the command line
        env = os.environ.copy()
        env["MYSQL_PWD"] = credentials["pass"]

        logger.info("Dumping MySQL to %s", self.dump_path)
        with open(self.dump_path, "wb") as output:
            dumper = subprocess.Popen(dump_command, stdout=subprocess.PIPE, env=env)
            try:
                compressor = subprocess.Popen(list(self.settings.compressor_args), stdin=dumper.stdout, stdout=output)
            except OSError:
                dumper.kill()
                dumper.wait()
                raise
            finally:
                # Compressor owns the read end now; mysqldump sees SIGPIPE if it exits
                dumper.stdout.close()
            dump_code = dumper.wait()
            compress_code = compressor.wait()

        if compress_code != 0:
            logger.warning("Compressor exited with code %s", compress_code)
        if dump_code != 0:
            logger.error("mysqldump exited with code %s", dump_code)
        return dump_code

    def dump_command(self, login: str) -> List[str]:
        return [*self.settings.mysqldump_args, "-u", login]


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="kopia-mysqldump-virtualmin",
        description="Kopia action: dump Virtualmin MySQL databases with rotation.",
    )
    parser.add_argument("-c", "--config", help="path to kopia-wrapper.yaml")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s", stream=sys.stderr)

    try:
        settings = WrapperConfig(args.config).settings.mysqldump
        return MysqlDumpAction(settings).run()
    except (ConfigError, WebminCredentialsError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_SETUP_FAILED
    except OSError as e:
        print(f"ERROR: MySQL dump failed: {e}", file=sys.stderr)
        return EXIT_SETUP_FAILED


if __name__ == "__main__":
    sys.exit(main())
