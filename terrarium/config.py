# terrarium/config.py
"""
Configuration for the Terrarium core.

All configuration flows through this module. Values are loaded from environment
variables (via .env file) and validated with Pydantic. Behavioral constants that
define the creature itself (trait ranges, memory window sizes, thresholds) live
beside the code that uses them; only deployment knobs belong here.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

import structlog
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


logger = structlog.get_logger(__name__)

# Resolve .env relative to the project root (one level above terrarium/ package),
# so the config works regardless of the user's current working directory.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"

StrategyName = Literal["legacy", "plan-queue", "event-driven", "layered"]


class InferenceConfig(BaseSettings):
    """Configuration for the text-generation backend."""

    backend: Literal["anthropic", "scripted"] = Field("scripted", alias="TERRARIUM_BACKEND")
    model: str = Field("claude-3-5-haiku-latest", alias="TERRARIUM_MODEL")
    api_key: Optional[str] = Field(None, alias="ANTHROPIC_API_KEY")

    # Per-attempt ceiling; the whole call (retries included) gets call_budget_seconds.
    request_timeout_seconds: float = Field(20.0, alias="TERRARIUM_REQUEST_TIMEOUT_SECONDS")
    retry_max_retries: int = Field(2, alias="TERRARIUM_RETRY_MAX_RETRIES")
    retry_base_delay: float = Field(0.5, alias="TERRARIUM_RETRY_BASE_DELAY")
    retry_max_delay: float = Field(4.0, alias="TERRARIUM_RETRY_MAX_DELAY")
    retry_exponential_base: float = Field(2.0, alias="TERRARIUM_RETRY_EXPONENTIAL_BASE")
    retry_jitter_range: float = Field(0.25, alias="TERRARIUM_RETRY_JITTER_RANGE")

    # Simulated latency range for the offline scripted backend
    scripted_min_latency: float = Field(0.5, alias="TERRARIUM_SCRIPTED_MIN_LATENCY")
    scripted_max_latency: float = Field(3.0, alias="TERRARIUM_SCRIPTED_MAX_LATENCY")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def normalize_limits(self) -> "InferenceConfig":
        self.request_timeout_seconds = max(1.0, float(self.request_timeout_seconds))
        self.retry_max_retries = max(0, int(self.retry_max_retries))
        self.retry_base_delay = max(0.05, float(self.retry_base_delay))
        self.retry_max_delay = max(self.retry_base_delay, float(self.retry_max_delay))
        self.retry_exponential_base = max(1.0, float(self.retry_exponential_base))
        self.retry_jitter_range = max(0.0, min(1.0, float(self.retry_jitter_range)))
        self.scripted_min_latency = max(0.0, float(self.scripted_min_latency))
        self.scripted_max_latency = max(self.scripted_min_latency, float(self.scripted_max_latency))
        return self

    @property
    def call_budget_seconds(self) -> float:
        """Outer ceiling for one thought: every retry attempt plus the backoff between them."""
        attempts = self.retry_max_retries + 1
        backoff = self.retry_max_retries * self.retry_max_delay * (1.0 + self.retry_jitter_range)
        return attempts * self.request_timeout_seconds + backoff


class HeartbeatConfig(BaseSettings):
    """Configuration for the heartbeat phase clock."""

    reflex_cooldown: float = Field(5.0, alias="TERRARIUM_REFLEX_COOLDOWN")
    pulse_decay: float = Field(0.92, alias="TERRARIUM_PULSE_DECAY")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def normalize_limits(self) -> "HeartbeatConfig":
        self.reflex_cooldown = max(0.0, float(self.reflex_cooldown))
        self.pulse_decay = max(0.0, min(0.999, float(self.pulse_decay)))
        return self


class EnergyConfig(BaseSettings):
    """Configuration for the metabolism economy."""

    initial_energy: float = Field(50.0, alias="TERRARIUM_INITIAL_ENERGY")
    # Energy lost per second while the creature is not running (applied on load)
    offline_decay_per_second: float = Field(0.01, alias="TERRARIUM_OFFLINE_DECAY")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def normalize_limits(self) -> "EnergyConfig":
        self.initial_energy = max(0.0, min(100.0, float(self.initial_energy)))
        self.offline_decay_per_second = max(0.0, float(self.offline_decay_per_second))
        return self


class PersistenceConfig(BaseSettings):
    """Configuration for creature state persistence."""

    data_dir: Path = Field(Path("./terrarium_data"), alias="TERRARIUM_DATA_DIR")
    state_file: Optional[Path] = Field(None, alias="TERRARIUM_STATE_FILE")
    autosave_interval: float = Field(30.0, alias="TERRARIUM_AUTOSAVE_INTERVAL")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def derive_paths_from_data_dir(self) -> "PersistenceConfig":
        if self.state_file is None:
            self.state_file = self.data_dir / "creature.json"
        self.autosave_interval = max(1.0, float(self.autosave_interval))
        return self


class BehaviorConfig(BaseSettings):
    """Configuration for the control loop and behavior strategy."""

    strategy: StrategyName = Field("legacy", alias="TERRARIUM_STRATEGY")
    tick_rate: float = Field(60.0, alias="TERRARIUM_TICK_RATE")
    action_history_size: int = Field(20, alias="TERRARIUM_ACTION_HISTORY_SIZE")
    log_level: str = Field("WARNING", alias="TERRARIUM_LOG_LEVEL")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def normalize_limits(self) -> "BehaviorConfig":
        self.tick_rate = max(1.0, min(240.0, float(self.tick_rate)))
        self.action_history_size = max(1, int(self.action_history_size))
        self.log_level = self.log_level.strip().upper() or "WARNING"
        return self


class TerrariumConfig:
    """
    Master configuration that composes all subsystem configs.

    Each section reads its own environment variables, so sections can be
    constructed and overridden independently in tests.
    """

    def __init__(self):
        self.inference = InferenceConfig()
        self.heartbeat = HeartbeatConfig()
        self.energy = EnergyConfig()
        self.persistence = PersistenceConfig()
        self.behavior = BehaviorConfig()

    def __repr__(self) -> str:
        return (
            f"TerrariumConfig(backend={self.inference.backend}, "
            f"model={self.inference.model}, "
            f"strategy={self.behavior.strategy}, "
            f"state_file={self.persistence.state_file})"
        )
