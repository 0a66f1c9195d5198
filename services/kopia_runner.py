"""
Kopia command planning
Builds the kopia command lines the wrapper runs and parses policy listings
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from models.settings import KopiaSettings

logger = logging.getLogger(__name__)

GLOBAL_POLICY_SENTINEL = "(global)"


class CommandType(Enum):
    """Kopia subcommands used by the wrapper"""
    POLICY_LIST = ("policy", "list")
    SNAPSHOT_CREATE = ("snapshot", "create")
    MAINTENANCE_RUN = ("maintenance", "run")


@dataclass
class KopiaCommand:
    """Planned kopia invocation"""
    command_type: CommandType
    args: List[str] = field(default_factory=list)
    label: str = ""

    def to_local_command(self, executable: str) -> List[str]:
        """Full argument vector including the kopia executable"""
        return [executable, *self.command_type.value, *self.args]

    def describe(self) -> str:
        return " ".join([*self.command_type.value, *self.args])


@dataclass
class Policy:
    """A kopia policy target as listed by `kopia policy list`"""
    identifier: str

    @property
    def path(self) -> Optional[str]:
        """Snapshot source: everything after the first colon"""
        if ":" not in self.identifier:
            return None
        return self.identifier.split(":", 1)[1]


class KopiaRunner:
    """Plans kopia commands from the wrapper settings"""

    def __init__(self, settings: Optional[KopiaSettings] = None):
        self.settings = settings or KopiaSettings()

    def plan_policy_list(self) -> KopiaCommand:
        return KopiaCommand(CommandType.POLICY_LIST, label="policy list")

    def plan_snapshot(self, policy: Policy) -> KopiaCommand:
        args = list(self.settings.snapshot_args) + [policy.path]
        return KopiaCommand(CommandType.SNAPSHOT_CREATE, args=args, label=policy.path)

    def plan_maintenance(self, full: bool) -> KopiaCommand:
        flag = "--full" if full else "--no-full"
        command = KopiaCommand(CommandType.MAINTENANCE_RUN, args=[flag])
        command.label = command.describe()
        return command

    def parse_policy_list(self, output: str) -> List[Policy]:
        """Policy identifiers in listing order, without the global policy"""
        column = self.settings.policy_column
        policies = []
        for line in output.splitlines():
            if not line.strip() or GLOBAL_POLICY_SENTINEL in line:
                continue
            fields = line.split()
            identifier = fields[column] if column < len(fields) else fields[-1]
            policy = Policy(identifier)
            if policy.path is None:
                logger.warning("Ignoring policy list line without a <kind>:<path> target: %s", line.strip())
                continue
            policies.append(policy)
        return policies
