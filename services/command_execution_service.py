"""
Command execution service for kopia subcommands
Runs commands into the active output capture, times them and records results in the run context
"""
import logging
import os
import subprocess
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from models.run import CommandInvocation, RunContext
from services.kopia_runner import KopiaCommand

logger = logging.getLogger(__name__)

# Same code a shell reports for a command it could not execute
LAUNCH_FAILURE_EXIT_CODE = 127


def normalise_returncode(returncode: int) -> int:
    """Report signal deaths as a shell would (128 + signal number)"""
    if returncode < 0:
        return 128 - returncode
    return returncode


@dataclass
class ExecutionResult:
    """Result of a command whose stdout was captured"""
    success: bool
    returncode: int
    stdout: str
    error_message: Optional[str] = None

    @classmethod
    def from_subprocess_result(cls, result: subprocess.CompletedProcess) -> 'ExecutionResult':
        returncode = normalise_returncode(result.returncode)
        return cls(
            success=returncode == 0,
            returncode=returncode,
            stdout=result.stdout or ""
        )

    @classmethod
    def exception_result(cls, exception: Exception) -> 'ExecutionResult':
        return cls(
            success=False,
            returncode=LAUNCH_FAILURE_EXIT_CODE,
            stdout="",
            error_message=str(exception)
        )


class CommandExecutionService:
    """Executes planned kopia commands with the kopia environment applied"""

    def __init__(self, executable: str, env_vars: Optional[Dict[str, str]] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.executable = executable
        self.env_vars = env_vars or {}
        self.clock = clock

    def run_recorded(self, command: KopiaCommand, context: RunContext) -> CommandInvocation:
        """Run one command with output going straight to our stdout/stderr and record the result.

        A failing or unlaunchable command is recorded, never raised: the caller
        carries on with the rest of the sequence.
        """
        argv = command.to_local_command(self.executable)
        print(f"INFO: Running: {' '.join(argv)}", flush=True)

        start = self.clock()
        try:
            completed = subprocess.run(argv, env=self._build_env())
            returncode = normalise_returncode(completed.returncode)
        except OSError as e:
            print(f"ERROR: Could not execute {argv[0]}: {e}", flush=True)
            returncode = LAUNCH_FAILURE_EXIT_CODE
        elapsed = self.clock() - start

        invocation = CommandInvocation(
            args=tuple(argv),
            label=command.label or command.describe(),
            exit_code=returncode,
            elapsed_seconds=elapsed,
        )
        context.record(invocation)

        print(f"INFO: {invocation.outcome.value} (exit code {returncode}, elapsed {invocation.elapsed}): "
              f"{invocation.label}", flush=True)
        return invocation

    def capture(self, command: KopiaCommand) -> ExecutionResult:
        """Run a command and collect its stdout; stderr still goes to the run log"""
        argv = command.to_local_command(self.executable)
        logger.debug("Capturing output of: %s", " ".join(argv))
        try:
            result = subprocess.run(argv, stdout=subprocess.PIPE, text=True, env=self._build_env())
            return ExecutionResult.from_subprocess_result(result)
        except OSError as e:
            return ExecutionResult.exception_result(e)

    def _build_env(self) -> Dict[str, str]:
        env = os.environ.copy()
        env.update(self.env_vars)
        return env

    def command_line(self, command: KopiaCommand) -> List[str]:
        return command.to_local_command(self.executable)
