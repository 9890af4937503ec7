"""Loading of the providers YAML file.

Entries that are invalid or incomplete are skipped with a warning so that
one bad provider never prevents the gateway from starting.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from multirouter.errors import ConfigurationError
from multirouter.providers.models import (
    ProviderInstanceConfig,
    ProvidersConfig,
    ProviderType,
    RoutingConfig,
    RoutingStrategy,
)


logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_SECONDS = 300

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def interpolate_env_vars(value: str, environ: Mapping[str, str] | None = None) -> str:
    """Resolve ``${VAR}`` references against the environment.

    Unresolved references become empty strings.

    Args:
        value: Raw string from the YAML file.
        environ: Environment mapping (defaults to ``os.environ``).

    Returns:
        The interpolated string.
    """
    env = os.environ if environ is None else environ

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1).strip()
        resolved = env.get(name)
        if resolved is None:
            logger.warning(
                "Environment variable referenced in providers file not found",
                extra={"variable": name},
            )
            return ""
        return resolved

    return _ENV_VAR_PATTERN.sub(_replace, value)


def parse_routing(raw: Any) -> RoutingConfig:
    """Parse the ``routing`` section, falling back to defaults."""
    section = raw if isinstance(raw, dict) else {}

    strategy_raw = section.get("default_strategy")
    try:
        strategy = RoutingStrategy(strategy_raw)
    except ValueError:
        if strategy_raw is not None:
            logger.warning(
                "Unknown default_strategy, using exhaust",
                extra={"default_strategy": strategy_raw},
            )
        strategy = RoutingStrategy.EXHAUST

    retry_raw = section.get("retry_after_seconds")
    if isinstance(retry_raw, (int, float)) and not isinstance(retry_raw, bool) and retry_raw >= 0:
        retry_after = retry_raw
    else:
        if retry_raw is not None:
            logger.warning(
                "Invalid retry_after_seconds, using default",
                extra={"retry_after_seconds": retry_raw},
            )
        retry_after = DEFAULT_RETRY_AFTER_SECONDS

    return RoutingConfig(default_strategy=strategy, retry_after_seconds=retry_after)


def parse_provider_entry(
    raw: Any,
    index: int,
    environ: Mapping[str, str] | None = None,
) -> ProviderInstanceConfig | None:
    """Validate one entry of the ``providers`` list.

    Args:
        raw: The raw YAML value.
        index: Position in the list, used for the generated default id.
        environ: Environment mapping for ``${VAR}`` interpolation.

    Returns:
        The instance config, or None if the entry must be skipped.
    """
    if not isinstance(raw, dict):
        logger.warning("Invalid provider entry, skipping", extra={"index": index})
        return None

    raw_id = raw.get("id")
    if isinstance(raw_id, str) and raw_id.strip():
        instance_id = raw_id.strip()
    else:
        instance_id = f"provider-{index}"

    type_raw = raw.get("type")

    try:
        provider_type = ProviderType(type_raw)
    except ValueError:
        logger.warning(
            "Unknown provider type, skipping",
            extra={"instance": instance_id, "type": type_raw},
        )
        return None

    api_key_raw = raw.get("api_key") if isinstance(raw.get("api_key"), str) else ""
    api_key = interpolate_env_vars(api_key_raw, environ)
    if not api_key:
        logger.warning(
            "No API key resolved, skipping provider",
            extra={"instance": instance_id},
        )
        return None

    base_url: str | None = None
    if isinstance(raw.get("base_url"), str):
        base_url = interpolate_env_vars(raw["base_url"], environ) or None
    if provider_type == ProviderType.OPENAI_COMPATIBLE and not base_url:
        logger.warning(
            "openai-compatible type requires base_url, skipping",
            extra={"instance": instance_id},
        )
        return None

    models_raw = raw.get("models")
    models = (
        [m for m in models_raw if isinstance(m, str) and m]
        if isinstance(models_raw, list)
        else []
    )
    if not models:
        logger.warning(
            "No models configured, skipping provider",
            extra={"instance": instance_id},
        )
        return None

    try:
        return ProviderInstanceConfig(
            id=instance_id,
            type=provider_type,
            api_key=api_key,
            base_url=base_url,
            models=tuple(models),
        )
    except ValidationError as e:
        logger.warning(
            "Invalid provider entry, skipping",
            extra={"instance": instance_id, "errors": e.errors(include_url=False)},
        )
        return None


def parse_providers_config(
    raw: Any,
    environ: Mapping[str, str] | None = None,
) -> ProvidersConfig:
    """Build a ProvidersConfig from already-parsed YAML data.

    Duplicate ids keep the first declaration.
    """
    document = raw if isinstance(raw, dict) else {}
    routing = parse_routing(document.get("routing"))

    entries = document.get("providers")
    if not isinstance(entries, list):
        entries = []

    providers: list[ProviderInstanceConfig] = []
    seen_ids: set[str] = set()
    for index, entry in enumerate(entries):
        config = parse_provider_entry(entry, index, environ)
        if config is None:
            continue
        if config.id in seen_ids:
            logger.warning(
                "Duplicate provider id, skipping",
                extra={"instance": config.id},
            )
            continue
        seen_ids.add(config.id)
        providers.append(config)

    logger.info(
        "Loaded providers configuration",
        extra={
            "providers": len(providers),
            "strategy": routing.default_strategy.value,
        },
    )
    return ProvidersConfig(routing=routing, providers=tuple(providers))


def load_providers_config(
    path: str | Path,
    environ: Mapping[str, str] | None = None,
) -> ProvidersConfig:
    """Load and validate the providers file.

    A missing file yields an empty configuration.

    Args:
        path: Path to the YAML file.
        environ: Environment mapping for ``${VAR}`` interpolation.

    Returns:
        Validated ProvidersConfig.

    Raises:
        ConfigurationError: If the file exists but cannot be read as
            UTF-8 YAML.
    """
    config_path = Path(path)
    if not config_path.exists():
        logger.warning(
            "Providers file not found, starting with no providers",
            extra={"path": str(config_path)},
        )
        return ProvidersConfig()

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot parse {config_path}: {e}") from e

    return parse_providers_config(raw, environ)
