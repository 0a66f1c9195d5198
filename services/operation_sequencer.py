"""
Operation sequencer
Expands requested operations into kopia commands, in the order they were given
"""
import logging
from typing import Iterable, List

from models.run import CommandInvocation, Operation, RunContext
from services.command_execution_service import CommandExecutionService
from services.kopia_runner import KopiaRunner, Policy

logger = logging.getLogger(__name__)


class OperationSequencer:
    """Drives the command runner for each requested operation"""

    def __init__(self, kopia_runner: KopiaRunner, executor: CommandExecutionService):
        self.kopia_runner = kopia_runner
        self.executor = executor

    def run(self, operations: Iterable[Operation], context: RunContext):
        """Execute every operation in order; command failures never stop the sequence"""
        for operation in operations:
            print(f"INFO: Starting operation '{operation.value}'", flush=True)
            if operation is Operation.SNAPSHOTS:
                self.run_snapshots(context)
            elif operation is Operation.MAINTENANCE_QUICK:
                self.executor.run_recorded(self.kopia_runner.plan_maintenance(full=False), context)
            elif operation is Operation.MAINTENANCE_FULL:
                self.executor.run_recorded(self.kopia_runner.plan_maintenance(full=True), context)
            else:
                raise ValueError(f"Unknown operation: {operation}")
        context.mark_completed()

    def run_snapshots(self, context: RunContext):
        """Snapshot every policy kopia currently knows about"""
        policies = self.discover_policies(context)
        if not policies:
            print("INFO: No policies to snapshot", flush=True)
            return
        for policy in policies:
            self.executor.run_recorded(self.kopia_runner.plan_snapshot(policy), context)

    def discover_policies(self, context: RunContext) -> List[Policy]:
        """Query policies fresh; a failed listing is recorded as a failed command"""
        command = self.kopia_runner.plan_policy_list()
        start = self.executor.clock()
        result = self.executor.capture(command)
        if not result.success:
            detail = f": {result.error_message}" if result.error_message else ""
            print(f"ERROR: Could not list kopia policies (exit code {result.returncode}){detail}", flush=True)
            context.record(CommandInvocation(
                args=tuple(self.executor.command_line(command)),
                label=command.label,
                exit_code=result.returncode,
                elapsed_seconds=self.executor.clock() - start,
            ))
            return []

        policies = self.kopia_runner.parse_policy_list(result.stdout)
        logger.debug("Discovered policies: %s", ", ".join(p.identifier for p in policies) or "none")
        return policies
