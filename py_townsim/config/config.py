from pathlib import Path
from typing import Dict, List, Optional

from dotenv import dotenv_values
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

import os

# Load .env for local/dev runs only where values are missing from the environment
BASE_DIR = Path(__file__).resolve().parent.parent.parent
env_file = BASE_DIR / ".env"

if env_file.exists():
    file_env = dotenv_values(env_file)
    missing_keys = {k: v for k, v in file_env.items() if k not in os.environ}
    for k, v in missing_keys.items():
        if v is not None:
            os.environ[k] = v


class Settings(BaseSettings):
    """Simulation settings pulled from environment variables (prefix ``TOWNSIM_``)."""

    model_config = SettingsConfigDict(
        env_prefix="TOWNSIM_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Town defaults
    default_starting_population: int = Field(
        default=5, description="Population (and boundary radius) of a new town"
    )
    default_search_radius: int = Field(
        default=10, description="Platform search radius for new towns"
    )
    max_town_name_length: int = Field(default=32, description="Longest allowed town name")

    # Tourism
    max_tourists_per_town: int = Field(default=10, description="Hard tourist cap per town")
    population_per_tourist: int = Field(
        default=10, description="Population required for each tourist slot"
    )
    max_pop_based_tourists: int = Field(
        default=20, description="Upper bound of the population-based tourist limit"
    )
    tourists_per_population_increase: int = Field(
        default=10, description="Visitors received per +1 population (0 disables growth)"
    )
    max_visit_history: int = Field(default=50, description="Visit history records kept per town")
    tourist_payment_resource: str = Field(
        default="money", description="Resource paid to a town for each arriving tourist"
    )
    tourist_payment_per_visitor: int = Field(
        default=2, description="Base fare paid per arriving tourist"
    )
    meters_per_emerald: int = Field(
        default=50, description="Distance a tourist travels per unit of distance fare (0 disables)"
    )
    fare_bonus_threshold: float = Field(
        default=1000.0, description="Trip length beyond which the long-trip bonus applies"
    )
    fare_bonus_meters: int = Field(
        default=100, description="Distance per bonus unit on long trips"
    )
    enable_milestones: bool = Field(default=True, description="Pay distance milestone rewards")
    milestone_rewards: Dict[int, List[str]] = Field(
        default_factory=lambda: {10: ["minecraft:bread:1", "minecraft:experience_bottle:2"]},
        description="Milestone distance -> namespace:item[:count] rewards per tourist",
    )

    # Economy and production
    default_storage_cap: float = Field(
        default=1000.0, description="Base storage capacity per resource"
    )
    daily_tick_interval: int = Field(default=24000, description="Ticks per simulated day")
    production_enabled: bool = Field(default=True, description="Run production recipes on tick")

    # Research
    research_check_interval: int = Field(
        default=200, description="Idle ticks between research AI selections"
    )
    research_bias_range: float = Field(
        default=2.0, description="Upper bound of the random selection bias"
    )

    # Payment board
    reward_expiration_days: float = Field(default=7.0, description="Reward lifetime in days")
    max_rewards: int = Field(default=100, description="Reward entries kept per board")
    expired_reward_retention_days: float = Field(
        default=30.0, description="Age after which expired rewards are dropped"
    )
    buffer_slot_count: int = Field(default=18, description="Buffer storage slot count")
    buffer_stack_size: int = Field(default=64, description="Items per buffer slot")

    # Content and persistence
    content_dir: Optional[Path] = Field(
        default=None, description="Directory holding items/productions/upgrades CSV files"
    )
    data_file: Optional[Path] = Field(
        default=None, description="JSON file used by the file-backed town store"
    )

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="console", description="Logging format (console or json)")


# Instantiate singleton settings object
settings = Settings()


def get_settings() -> Settings:
    """Get the current simulation settings."""
    return settings
