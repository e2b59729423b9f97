# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Classification policy: threat bands, family tie-break order, benign labels.

The defaults come from :class:`~malscope.core.config.Settings`; a YAML file
named by ``MALSCOPE_POLICY_FILE`` may override any of them::

    bands:
      critical: 0.90
      high: 0.75
      medium: 0.55
    family_priority: [Ransomware, Rootkit, Backdoor, Trojan]
    benign_families: [Benign, Clean]
    packed_entropy_threshold: 7.5
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from malscope.core.config import Settings
from malscope.core.constants import (
    DEFAULT_BENIGN_FAMILIES,
    DEFAULT_FAMILY_PRIORITY,
    ENTROPY_MAX,
    PACKED_ENTROPY_THRESHOLD,
)
from malscope.core.exceptions import ConfigurationError
from malscope.scanner.severity import DEFAULT_BANDS, ThreatBands, is_benign_family

logger = logging.getLogger("malscope.scanner.policy")


class _BandsDefinition(BaseModel):
    model_config = ConfigDict(extra="forbid")

    critical: float | None = Field(default=None, ge=0.0, le=1.0)
    high: float | None = Field(default=None, ge=0.0, le=1.0)
    medium: float | None = Field(default=None, ge=0.0, le=1.0)


class PolicyDefinition(BaseModel):
    """Schema of a YAML policy file."""

    model_config = ConfigDict(extra="forbid")

    bands: _BandsDefinition = Field(default_factory=_BandsDefinition)
    family_priority: list[str] | None = None
    benign_families: list[str] | None = None
    packed_entropy_threshold: float | None = Field(default=None, ge=0.0, le=ENTROPY_MAX)


@dataclass(frozen=True)
class ClassificationPolicy:
    bands: ThreatBands = DEFAULT_BANDS
    family_priority: tuple[str, ...] = DEFAULT_FAMILY_PRIORITY
    benign_families: tuple[str, ...] = DEFAULT_BENIGN_FAMILIES
    packed_entropy_threshold: float = PACKED_ENTROPY_THRESHOLD
    source: str = field(default="defaults", compare=False)

    def is_benign(self, family: str | None) -> bool:
        return is_benign_family(family, self.benign_families)

    @classmethod
    def from_settings(cls, settings: Settings) -> ClassificationPolicy:
        try:
            policy = cls(
                bands=ThreatBands(
                    critical=settings.band_critical,
                    high=settings.band_high,
                    medium=settings.band_medium,
                ),
                family_priority=tuple(settings.family_priority),
                benign_families=tuple(settings.benign_families),
                packed_entropy_threshold=settings.packed_entropy_threshold,
                source="settings",
            )
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

        if settings.policy_file:
            policy = policy.merged_with_file(settings.policy_file)
        return policy

    def merged_with_file(self, path: str | Path) -> ClassificationPolicy:
        """Return a copy of this policy with overrides from a YAML file."""
        policy_path = Path(path)
        try:
            raw = yaml.safe_load(policy_path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ConfigurationError(f"Cannot read policy file {policy_path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in policy file {policy_path}: {exc}") from exc

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigurationError(
                f"Expected a mapping at top level of {policy_path}, got {type(raw).__name__}"
            )

        try:
            definition = PolicyDefinition(**raw)
        except PydanticValidationError as exc:
            raise ConfigurationError(f"Invalid policy file {policy_path}: {exc}") from exc

        try:
            bands = ThreatBands(
                critical=_pick(definition.bands.critical, self.bands.critical),
                high=_pick(definition.bands.high, self.bands.high),
                medium=_pick(definition.bands.medium, self.bands.medium),
            )
        except ValueError as exc:
            raise ConfigurationError(f"Invalid bands in {policy_path}: {exc}") from exc

        logger.info("Loaded classification policy from %s", policy_path)
        return ClassificationPolicy(
            bands=bands,
            family_priority=tuple(definition.family_priority or self.family_priority),
            benign_families=tuple(definition.benign_families or self.benign_families),
            packed_entropy_threshold=_pick(
                definition.packed_entropy_threshold, self.packed_entropy_threshold
            ),
            source=str(policy_path),
        )


def _pick(override: float | None, current: float) -> float:
    return current if override is None else override
