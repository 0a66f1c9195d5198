"""
Configuration models for kopia-wrapper
Validated view of the YAML config after secrets have been merged in
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


DEFAULT_SUBJECT = "Kopia backup %STATUS%: %HOSTLONG%"


class NotifyPolicy(Enum):
    """When a notification is sent"""
    ALWAYS = "always"
    ERRORS = "errors"


class ProviderSettings(BaseModel):
    """A notifiers provider used alongside (or instead of) the notify command"""
    name: str
    config: Dict[str, Any] = Field(default_factory=dict)


class NotifySettings(BaseModel):
    policy: NotifyPolicy = NotifyPolicy.ALWAYS
    subject: str = DEFAULT_SUBJECT
    command: str = ""
    provider: Optional[ProviderSettings] = None

    @field_validator("policy", mode="before")
    @classmethod
    def _normalise_policy(cls, value):
        # Accept the spellings operators tend to write
        if isinstance(value, str):
            value = value.strip().lower().replace("_", "-")
            if value in ("errors-only", "error", "failures", "on-error"):
                return NotifyPolicy.ERRORS.value
        return value


class KopiaSettings(BaseModel):
    executable: str = "kopia"
    environment_file: Optional[str] = None
    snapshot_args: List[str] = Field(default_factory=lambda: ["--force-enable-actions", "--no-progress"])
    policy_column: int = Field(default=1, ge=0)


class MysqlDumpSettings(BaseModel):
    webmin_config: str = "/etc/webmin/mysql/config"
    dump_dir: str = "/home/mysqldumps"
    dump_dir_mode: int = 0o700
    dump_file: str = "kopia-wrapper_virtualmin.sql.gz"
    rotations: int = Field(default=5, ge=0)
    mysqldump_args: List[str] = Field(default_factory=lambda: [
        "/usr/bin/mysqldump",
        "--all-databases",
        "--ignore-table=mysql.event",
    ])
    compressor_args: List[str] = Field(default_factory=lambda: ["/bin/gzip", "-9", "--rsyncable"])

    @field_validator("dump_dir_mode", mode="before")
    @classmethod
    def _parse_mode(cls, value):
        # Quoted modes such as "0700" are octal
        if isinstance(value, str):
            return int(value, 8)
        return value


class WrapperSettings(BaseModel):
    kopia: KopiaSettings = Field(default_factory=KopiaSettings)
    notify: NotifySettings = Field(default_factory=NotifySettings)
    lock_file: Optional[str] = None
    log_dir: Optional[str] = None
    secrets_file: Optional[str] = None
    propagate_command_failures: bool = False
    mysqldump: MysqlDumpSettings = Field(default_factory=MysqlDumpSettings)
