"""
Instance metadata: optional facts about the target database instance.

Built once per run by the caller (from a file, or from a cloud provider
lookup) and passed to every checker constructor. All fields are optional
so checks can degrade gracefully when a value is unknown.
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

_VERSION_RE = re.compile(r"^\s*(\d+)(?:\.(\d+))?")


class InstanceMetadata(BaseModel):
    """Database instance specifications and configuration."""

    model_config = ConfigDict(frozen=True)

    # Identification
    instance_id: str | None = Field(default=None, description="Instance identifier")
    instance_class: str | None = Field(
        default=None, description='Size descriptor (e.g. "db.r6g.xlarge")'
    )
    tags: dict[str, str] = Field(default_factory=dict, description="Instance tags")

    # Compute
    vcpu_cores: int | None = Field(default=None, ge=0, description="Number of vCPU cores")
    memory_gb: float | None = Field(default=None, ge=0, description="RAM in gigabytes")

    # High availability
    multi_az: bool = False
    availability_zone: str | None = None
    secondary_az: str | None = None

    # Storage
    storage_type: str | None = Field(default=None, description='e.g. "gp3", "io2"')
    storage_gb: int | None = None
    storage_iops: int | None = None
    storage_autoscaling: bool = False
    max_storage_threshold_gb: int | None = None
    storage_encrypted: bool = False

    publicly_accessible: bool = False

    # Protection and maintenance
    deletion_protection: bool = False
    backup_retention_days: int | None = None
    auto_minor_version_upgrade: bool = False

    # Engine version
    engine_version: str | None = Field(default=None, description='e.g. "15.4"')
    engine_version_major: int | None = None
    engine_version_minor: int | None = None

    @classmethod
    def from_engine_version(cls, engine_version: str, **kwargs: Any) -> "InstanceMetadata":
        """
        Build metadata, parsing major/minor out of an engine version string.

        "15.4" gives major 15, minor 4; "16" gives major 16 and no minor.
        An unparseable string keeps the raw value and leaves both unset.
        """
        major: int | None = None
        minor: int | None = None
        match = _VERSION_RE.match(engine_version)
        if match:
            major = int(match.group(1))
            if match.group(2) is not None:
                minor = int(match.group(2))

        return cls(
            engine_version=engine_version,
            engine_version_major=major,
            engine_version_minor=minor,
            **kwargs,
        )
