"""config/loader.py

Typed settings for the engine, read once from settings.yaml.

Every engine takes its section as a constructor argument; nothing here is a
module-level singleton. Unknown keys are logged and ignored, missing keys fall
back to the dataclass defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Optional, Tuple

import yaml

from ai import OllamaChatConfig
from utils.errors import ConfigError
from utils.logging import log

CONFIG_PATH = os.path.join(os.path.dirname(__file__), "settings.yaml")


@dataclass(frozen=True)
class EmotionConfig:
    valence_baseline: float = 0.0
    arousal_baseline: float = 0.5
    valence_decay_rate: float = 0.04
    arousal_decay_rate: float = 0.05
    max_decay_hours: float = 24.0
    resentment_decay_factor: float = 0.95
    resentment_increase: float = 0.1
    apology_discharge: float = 0.4
    soft_boundary_exponent: float = 1.5
    suppression_steepness: float = 10.0
    suppression_midpoint: float = 0.5
    meltdown_resentment: float = 0.8
    meltdown_valence: float = -0.7
    stimulus_weight: float = 0.5
    hostile_offensiveness: int = 3
    meltdown_responses: Tuple[str, ...] = ("......", "I don't want to talk.")


@dataclass(frozen=True)
class IntimacyConfig:
    base_growth_rate: float = 0.02
    valence_weight: float = 0.3
    time_decay_per_hour: float = 0.05
    min_time_factor: float = 0.2
    min_quality: float = 0.5
    max_quality: float = 1.5
    max_growth_per_interaction: float = 0.05
    growth_recovery: float = 0.01
    hostile_intimacy_penalty: float = 0.05
    hostile_growth_penalty: float = 0.1
    cooling_base_hours: float = 2.0
    cooling_severity_hours: float = 6.0
    natural_regression_per_hour: float = 0.001
    cooling_regression_multiplier: float = 1.5
    cooling_growth_factor: float = 0.3
    low_threshold: float = 0.3
    high_threshold: float = 0.7


@dataclass(frozen=True)
class PersonalityConfig:
    plasticity_decay: float = 0.1
    plasticity_decay_interval: int = 100
    min_plasticity: float = 0.001
    max_change_per_feedback: float = 0.02
    negative_feedback_weight: float = 1.2
    shift_cooldown_s: float = 60.0
    fusion_extraversion: float = 0.15
    fusion_agreeableness: float = 0.1
    fusion_neuroticism: float = 0.1


@dataclass(frozen=True)
class BioRhythmConfig:
    peak_laziness: float = 0.9
    comfort_penalty: float = 0.2
    repeat_penalty: float = 0.2


@dataclass(frozen=True)
class CompassConfig:
    hostile_offensiveness: int = 6
    hostile_resentment: float = 0.8
    cold_laziness: float = 0.6
    cold_resentment: float = 0.4


@dataclass(frozen=True)
class GenerationConfig:
    temperature: float = 0.7
    top_p: float = 0.8
    max_tokens: int = 4096
    history_length: int = 15
    history_length_close: int = 20
    prompt_log: Optional[str] = None


@dataclass(frozen=True)
class ReflectionConfig:
    enabled: bool = True
    quiet_period_s: float = 180.0
    decay_tick_s: float = 300.0
    max_notes: int = 50
    perception_timeout_s: float = 8.0
    crisis_timeout_s: float = 2.0


@dataclass(frozen=True)
class PersonaConfig:
    name: str = "Mira"
    description: str = (
        "A companion with a stable character of her own. She has moods, remembers "
        "how she has been treated, and warms up to people slowly."
    )


@dataclass(frozen=True)
class SafetyConfig:
    crisis_response: str = (
        "I'm really glad you told me. You don't have to go through this alone. "
        "If you are in danger right now, please contact your local emergency number "
        "or a crisis line. I'm here and I'm listening."
    )


@dataclass(frozen=True)
class InitialStateConfig:
    valence: float = 0.0
    arousal: float = 0.5
    resentment: float = 0.0
    intimacy: float = 0.0
    growth_coefficient: float = 1.0
    openness: float = 0.5
    conscientiousness: float = 0.5
    extraversion: float = 0.5
    agreeableness: float = 0.5
    neuroticism: float = 0.5
    plasticity: float = 0.01


@dataclass(frozen=True)
class Settings:
    database_path: str = "memory/psyche.db"
    timezone: str = "Europe/Copenhagen"
    emotion: EmotionConfig = field(default_factory=EmotionConfig)
    intimacy: IntimacyConfig = field(default_factory=IntimacyConfig)
    personality: PersonalityConfig = field(default_factory=PersonalityConfig)
    biorhythm: BioRhythmConfig = field(default_factory=BioRhythmConfig)
    compass: CompassConfig = field(default_factory=CompassConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    llm: OllamaChatConfig = field(default_factory=OllamaChatConfig)
    reflection: ReflectionConfig = field(default_factory=ReflectionConfig)
    persona: PersonaConfig = field(default_factory=PersonaConfig)
    safety: SafetyConfig = field(default_factory=SafetyConfig)
    initial_state: InitialStateConfig = field(default_factory=InitialStateConfig)


_SECTIONS = {
    "emotion": EmotionConfig,
    "intimacy": IntimacyConfig,
    "personality": PersonalityConfig,
    "biorhythm": BioRhythmConfig,
    "compass": CompassConfig,
    "generation": GenerationConfig,
    "llm": OllamaChatConfig,
    "reflection": ReflectionConfig,
    "persona": PersonaConfig,
    "safety": SafetyConfig,
    "initial_state": InitialStateConfig,
}


def load_config(path: Optional[str] = None) -> dict:
    """Loads the raw configuration mapping from settings.yaml."""
    path = path or os.getenv("PSYCHE_SETTINGS") or CONFIG_PATH
    if not os.path.exists(path):
        raise ConfigError(f"Configuration file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Configuration file is not valid YAML: {path}", cause=e) from e
    if config_data is None:
        return {}
    if not isinstance(config_data, dict):
        raise ConfigError("Configuration file is not a valid YAML dictionary.")
    return config_data


def _section(name: str, cls: type, raw: Any) -> Any:
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ConfigError(f"Section '{name}' must be a mapping, got {type(raw).__name__}")

    known = {f.name: f for f in fields(cls)}
    kwargs: Dict[str, Any] = {}
    for key, value in raw.items():
        if key not in known:
            log(f"[Config] Ignoring unknown key {name}.{key}")
            continue
        if isinstance(value, list):
            value = tuple(value)
        kwargs[key] = value
    try:
        return cls(**kwargs)
    except TypeError as e:
        raise ConfigError(f"Invalid values in section '{name}': {e}", cause=e) from e


def load_settings(path: Optional[str] = None) -> Settings:
    """Build the typed Settings tree from the YAML file (plus env overrides)."""
    data = load_config(path)

    sections = {name: _section(name, cls, data.get(name)) for name, cls in _SECTIONS.items()}

    env_url = os.getenv("PSYCHE_LLM_URL")
    env_model = os.getenv("PSYCHE_LLM_MODEL")
    if env_url:
        sections["llm"] = replace(sections["llm"], url=env_url)
    if env_model:
        sections["llm"] = replace(sections["llm"], model=env_model)

    return Settings(
        database_path=str(data.get("database_path", Settings.database_path)),
        timezone=str(data.get("timezone", Settings.timezone)),
        **sections,
    )
