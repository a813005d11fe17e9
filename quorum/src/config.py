"""
Configuration loading and component factories.

Every tunable lives in config.yaml at the repository root. Missing keys
fall back to the defaults baked into each component.
"""

from pathlib import Path
from typing import Optional, Union

import yaml

from shared.logging import get_logger

from .cache import DEFAULT_TTL_SECONDS, JsonFileStore, ResultCache
from .coordinator import DEFAULT_POOL_URL, DEFAULT_TIMEOUT_SECONDS, ModelCoordinator, PoolAgent
from .error_handler import ConsensusErrorHandler
from .models import ConsensusSettings, RetryConfig
from .text_processing import FACT_SIMILARITY_THRESHOLD
from .validator import SourceValidator

log = get_logger("quorum", "config")

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent.parent / "config.yaml"
DEFAULT_CACHE_PATH = "data/consensus_cache.json"


def load_config(path: Optional[Union[str, Path]] = None) -> dict:
    """Load configuration from config.yaml. Returns {} if missing or unreadable."""
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        log.warning("quorum.config.missing", path=str(config_path))
        return {}
    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        log.warning("quorum.config.invalid", path=str(config_path), error=str(e))
        return {}
    return data if isinstance(data, dict) else {}


def get_consensus_settings(config: dict) -> ConsensusSettings:
    return ConsensusSettings.from_dict(config.get("consensus", {}))


def create_error_handler(config: dict) -> ConsensusErrorHandler:
    """Build an error handler from the `retry` section."""
    return ConsensusErrorHandler(RetryConfig.from_dict(config.get("retry", {})))


def create_result_cache(config: dict, initialize: bool = True) -> ResultCache:
    """Build a file-backed cache from the `cache` section, loaded from disk by default."""
    cache_config = config.get("cache", {})
    cache = ResultCache(
        store=JsonFileStore(cache_config.get("path", DEFAULT_CACHE_PATH)),
        default_ttl=cache_config.get("ttl_seconds", DEFAULT_TTL_SECONDS),
        ignore_expiration=cache_config.get("ignore_expiration", False),
    )
    if initialize:
        cache.initialize()
    return cache


def create_pool_agents(config: dict) -> list[PoolAgent]:
    """One PoolAgent per enabled agent in the `consensus` section."""
    pool_url = config.get("pool", {}).get("url", DEFAULT_POOL_URL)
    timeout = config.get("consensus", {}).get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)
    return [
        PoolAgent(agent_id, pool_url=pool_url, timeout_seconds=int(timeout))
        for agent_id in get_consensus_settings(config).enabled_agent_ids
    ]


def create_coordinator(config: dict, agents=None) -> ModelCoordinator:
    """Coordinator over the given agents, or over pool agents built from config."""
    settings = get_consensus_settings(config)
    return ModelCoordinator(
        agents if agents is not None else create_pool_agents(config),
        error_handler=create_error_handler(config),
        min_agents_required=settings.min_models_required,
    )


def create_source_validator(coordinator: ModelCoordinator, config: dict) -> SourceValidator:
    """Build a validator using the `consensus` timeout and `similarity` threshold."""
    return SourceValidator(
        coordinator,
        timeout=config.get("consensus", {}).get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS),
        fact_similarity_threshold=config.get("similarity", {}).get(
            "fact_threshold", FACT_SIMILARITY_THRESHOLD
        ),
    )
