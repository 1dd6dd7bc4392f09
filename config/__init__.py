# config package - settings file + typed loader
from config.loader import (
    Settings,
    EmotionConfig,
    IntimacyConfig,
    PersonalityConfig,
    BioRhythmConfig,
    CompassConfig,
    GenerationConfig,
    ReflectionConfig,
    PersonaConfig,
    SafetyConfig,
    InitialStateConfig,
    load_config,
    load_settings,
)

__all__ = [
    "Settings",
    "EmotionConfig",
    "IntimacyConfig",
    "PersonalityConfig",
    "BioRhythmConfig",
    "CompassConfig",
    "GenerationConfig",
    "ReflectionConfig",
    "PersonaConfig",
    "SafetyConfig",
    "InitialStateConfig",
    "load_config",
    "load_settings",
]
