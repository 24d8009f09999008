"""
======================== INDEX ========================
1. Description générale / Overview
2. Composants principaux / Main components
3. Notes de maintenance / Maintenance notes

======================== FRANÇAIS ========================
Fichier : `src/scrutin/utils/config_loader.py`.
Charge la description YAML des hiérarchies (niveaux, nombre d'unités
attendues par entité).

Composants détectés :
  - LevelsSection
  - HierarchyConfig
  - load_hierarchy_config

======================== ENGLISH ========================
File: `src/scrutin/utils/config_loader.py`.
Loads the YAML description of hierarchies (levels, expected unit count per
entity).

Detected components:
  - LevelsSection
  - HierarchyConfig
  - load_hierarchy_config
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Dict, List, Tuple

import yaml
from pydantic import BaseModel, Field, StrictInt, ValidationError, field_validator

from scrutin.core.aggregation import ELECTORAL_LEVELS, GEOGRAPHIC_LEVELS
from scrutin.core.normalize import LOCATION_LEVELS

ExpectedCount = Annotated[StrictInt, Field(ge=0)]


def _unknown_levels(levels: List[str]) -> List[str]:
    return [level for level in levels if level not in LOCATION_LEVELS]


class LevelsSection(BaseModel):
    """Niveaux d'une hiérarchie, de la feuille vers la racine.

    English: Levels of one hierarchy, from leaf to root.
    """

    levels: List[str] = Field(..., min_length=1)

    @field_validator("levels")
    @classmethod
    def levels_must_be_known(cls, value: List[str]) -> List[str]:
        unknown = _unknown_levels(value)
        if unknown:
            raise ValueError(f"niveaux inconnus (unknown levels): {', '.join(unknown)}")
        return value


class HierarchyConfig(BaseModel):
    """Niveaux des deux hiérarchies et unités attendues.

    English: Levels of both hierarchies and expected units.
    """

    electoral: LevelsSection = Field(default_factory=lambda: LevelsSection(levels=list(ELECTORAL_LEVELS)))
    geographic: LevelsSection = Field(default_factory=lambda: LevelsSection(levels=list(GEOGRAPHIC_LEVELS)))
    expected_units: Dict[str, Dict[str, ExpectedCount]] = Field(default_factory=dict)

    @field_validator("expected_units", mode="before")
    @classmethod
    def stringify_entity_codes(cls, value: Any) -> Any:
        """Les codes non quotés en YAML (12) arrivent en entiers.

        English: Unquoted YAML codes (12) arrive as integers.
        """
        if value is None:
            return {}
        if not isinstance(value, dict):
            return value
        normalized: Dict[str, Any] = {}
        for level, counts in value.items():
            if counts is None:
                counts = {}
            if isinstance(counts, dict):
                counts = {str(code): count for code, count in counts.items()}
            normalized[str(level)] = counts
        return normalized

    @field_validator("expected_units")
    @classmethod
    def expected_levels_must_be_known(cls, value: Dict[str, Dict[str, int]]) -> Dict[str, Dict[str, int]]:
        unknown = _unknown_levels(list(value))
        if unknown:
            raise ValueError(f"niveaux inconnus (unknown levels) in expected_units: {', '.join(unknown)}")
        return value

    @property
    def electoral_levels(self) -> Tuple[str, ...]:
        return tuple(self.electoral.levels)

    @property
    def geographic_levels(self) -> Tuple[str, ...]:
        return tuple(self.geographic.levels)

    model_config = {
        "extra": "ignore",
        "frozen": True,
    }


def _load_yaml_mapping(path: Path) -> dict[str, Any]:
    """Charge un mapping YAML ou lève une erreur destinée à l'utilisateur.

    Load a YAML mapping or raise a user-facing error.
    """
    if not path.exists():
        raise FileNotFoundError(f"Fichier manquant {path.as_posix()} (Missing {path.as_posix()}).")
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"{path.name} contient des erreurs de syntaxe YAML ({path.name} has YAML syntax errors).") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"{path.name} doit être un mapping YAML ({path.name} must be a YAML mapping).")
    return raw


def load_hierarchy_config(path: str | Path) -> HierarchyConfig:
    """Charge et valide la configuration des hiérarchies.

    Exemple / Example::

        electoral:
          levels: [cel, circonscription]
        expected_units:
          circonscription:
            "004": 5

    English:
        Load and validate the hierarchy configuration.
    """
    path = Path(path)
    raw = _load_yaml_mapping(path)
    try:
        return HierarchyConfig.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(
            f"{path.name} ne respecte pas le schéma attendu ({path.name} does not meet the required schema): "
            f"{exc.errors(include_url=False)}"
        ) from exc
