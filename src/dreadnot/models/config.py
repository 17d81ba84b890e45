"""Pydantic models for the Dreadnot settings file."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dreadnot.config.defaults import DEFAULT_TIP_TTL


class RegionConfig(BaseModel):
    """Per-region overrides of stack settings.

    Attributes:
        dryrun: Overrides the stack's dry-run flag for this region
        named_locks: Replaces the stack's named lock templates for this region
    """

    model_config = ConfigDict(extra="forbid")

    dryrun: bool | None = Field(default=None, description="Dry-run override")
    named_locks: list[str] | None = Field(
        default=None, description="Named lock templates for this region"
    )


class StackConfig(BaseModel):
    """Configuration of a single deployable stack.

    Unknown keys are kept so stack modules can read their own settings
    through ``stack.stack_config``.

    Attributes:
        module_name: Stack module file name, defaults to the stack name
        regions: Regions this stack deploys to
        tip_ttl: Seconds a looked-up latest revision stays cached
        named_locks: ``str.format`` templates over the run arguments
        dryrun: Pass ``dry_run=True`` to every task
        region_overrides: Per-region setting overrides
    """

    model_config = ConfigDict(extra="allow")

    module_name: str | None = Field(default=None, description="Stack module name")
    regions: list[str] = Field(..., min_length=1, description="Deploy regions")
    tip_ttl: float = Field(
        default=DEFAULT_TIP_TTL, ge=0, description="Latest revision cache TTL (s)"
    )
    named_locks: list[str] = Field(default_factory=list)
    dryrun: bool = False
    region_overrides: dict[str, RegionConfig] = Field(default_factory=dict)

    @field_validator("regions")
    @classmethod
    def validate_unique_regions(cls, v: list[str]) -> list[str]:
        """Reject duplicate region names."""
        if len(set(v)) != len(v):
            raise ValueError(f"Duplicate region names: {v}")
        return v

    def dryrun_for(self, region: str) -> bool:
        """Return the effective dry-run flag for a region."""
        override = self.region_overrides.get(region)
        if override is not None and override.dryrun is not None:
            return override.dryrun
        return self.dryrun

    def named_locks_for(self, region: str) -> list[str]:
        """Return the effective named lock templates for a region."""
        override = self.region_overrides.get(region)
        if override is not None and override.named_locks is not None:
            return override.named_locks
        return self.named_locks


class DreadnotConfig(BaseModel):
    """Top-level Dreadnot settings.

    Attributes:
        name: Human-readable title of this instance
        env: Environment name passed to tasks (e.g. production)
        data_root: Directory holding deployment records and the warning file
        stacks_dir: Directory containing stack module files
        stacks: Stack configurations keyed by stack name
    """

    model_config = ConfigDict(extra="allow")

    name: str = Field(default="Dreadnot", description="Instance title")
    env: str = Field(..., description="Environment name")
    data_root: Path = Field(default=Path("./data"))
    stacks_dir: Path = Field(default=Path("./stacks"))
    stacks: dict[str, StackConfig] = Field(default_factory=dict)
