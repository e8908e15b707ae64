"""Read-mostly registry of model profiles with YAML loading and hot reload."""

import logging
from pathlib import Path
from typing import Optional

import yaml

from aris_routing.errors import UnknownModelError
from aris_routing.routing.models import ComplexityClass, ModelCapabilities, ModelProfile

logger = logging.getLogger(__name__)

DEFAULT_PROFILES: list[ModelProfile] = [
    ModelProfile(
        id="gpt-3.5-turbo",
        name="GPT-3.5 Turbo",
        provider_model="openai/gpt-3.5-turbo",
        capabilities=ModelCapabilities(reasoning=7, speed=9, creativity=7, accuracy=8),
        cost_per_1k_units=0.0015,
        max_input_units=4096,
        suitable_for=frozenset({ComplexityClass.SIMPLE, ComplexityClass.STANDARD}),
        description="Fast and cost-effective for simple tasks",
    ),
    ModelProfile(
        id="gpt-4o-mini",
        name="GPT-4o Mini",
        provider_model="openai/gpt-4o-mini",
        capabilities=ModelCapabilities(reasoning=8, speed=8, creativity=8, accuracy=9),
        cost_per_1k_units=0.00015,
        max_input_units=8192,
        suitable_for=frozenset({ComplexityClass.SIMPLE, ComplexityClass.STANDARD}),
        description="Best balance of performance and cost",
    ),
    ModelProfile(
        id="gpt-4o",
        name="GPT-4o",
        provider_model="openai/gpt-4o",
        capabilities=ModelCapabilities(reasoning=10, speed=7, creativity=9, accuracy=10),
        cost_per_1k_units=0.005,
        max_input_units=8192,
        suitable_for=frozenset({ComplexityClass.STANDARD, ComplexityClass.COMPLEX}),
        description="Most capable model for complex reasoning",
    ),
    ModelProfile(
        id="gpt-4",
        name="GPT-4",
        provider_model="openai/gpt-4",
        capabilities=ModelCapabilities(reasoning=9, speed=6, creativity=9, accuracy=9),
        cost_per_1k_units=0.03,
        max_input_units=8192,
        suitable_for=frozenset({ComplexityClass.COMPLEX}),
        description="Premium model for highest quality results",
    ),
]


def load_profiles(path: Path) -> list[ModelProfile]:
    """Load model profiles from a YAML document.

    The document must contain a top-level ``models`` list whose items match
    the ModelProfile fields.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed model profiles.

    Raises:
        ValueError: If the document has no ``models`` list or a profile is invalid.
    """
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    raw_models = data.get("models") if isinstance(data, dict) else None
    if not isinstance(raw_models, list):
        raise ValueError(f"Model profile file {path} must define a 'models' list")

    profiles = [ModelProfile.model_validate(item) for item in raw_models]
    logger.info(f"model_registry_loaded_file: path={path}, count={len(profiles)}")
    return profiles


class ModelRegistry:
    """Process-wide map of model id to ModelProfile.

    Populated at startup and read without locking. ``reload`` swaps the
    whole mapping in one assignment so readers see either the old or the
    new set, never a mix.

    Args:
        profiles: Initial profiles. Defaults to DEFAULT_PROFILES.
    """

    def __init__(self, profiles: Optional[list[ModelProfile]] = None) -> None:
        self._profiles: dict[str, ModelProfile] = {}
        self.reload(profiles if profiles is not None else DEFAULT_PROFILES)

    @classmethod
    def from_path(cls, path: Optional[Path]) -> "ModelRegistry":
        """Build a registry from a YAML file, or the defaults when path is None."""
        if path is None:
            return cls()
        return cls(load_profiles(path))

    def reload(self, profiles: list[ModelProfile]) -> None:
        """Replace all profiles atomically.

        Raises:
            ValueError: If profiles is empty or contains duplicate ids.
        """
        if not profiles:
            raise ValueError("Model registry requires at least one profile")

        new_profiles: dict[str, ModelProfile] = {}
        for profile in profiles:
            if profile.id in new_profiles:
                raise ValueError(f"Duplicate model id in registry: {profile.id}")
            new_profiles[profile.id] = profile

        self._profiles = new_profiles
        logger.info(f"model_registry_reloaded: models={sorted(new_profiles)}")

    def get(self, model_id: str) -> Optional[ModelProfile]:
        """Return a profile by id, or None if unknown."""
        return self._profiles.get(model_id)

    def require(self, model_id: str) -> ModelProfile:
        """Return a profile by id.

        Raises:
            UnknownModelError: If the id is not registered.
        """
        profile = self._profiles.get(model_id)
        if profile is None:
            raise UnknownModelError(model_id)
        return profile

    def all(self) -> list[ModelProfile]:
        """Return every registered profile."""
        return list(self._profiles.values())

    def for_complexity(self, complexity: ComplexityClass) -> list[ModelProfile]:
        """Return profiles declared suitable for a complexity class."""
        return [p for p in self._profiles.values() if p.supports(complexity)]

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._profiles

    def __len__(self) -> int:
        return len(self._profiles)
