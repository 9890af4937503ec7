"""Provider registry.

Owns every configured provider instance, its health state and the
selection logic for both routing strategies.

Health is lazy: an instance marked rate-limited comes back once
``retry_after_seconds`` have elapsed, evaluated at the start of every
selection call. There is no background task and no permanent disable.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from multirouter.providers.base import ChatBackend
from multirouter.providers.models import (
    AUTO_MODEL_ID,
    AUTO_MODEL_OWNER,
    InstanceStatus,
    ModelCard,
    ProviderInstanceConfig,
    ProvidersConfig,
    RoutingConfig,
    RoutingStrategy,
)


logger = logging.getLogger(__name__)

# Builds the chat backend for one instance config
BackendBuilder = Callable[[ProviderInstanceConfig], ChatBackend]


@dataclass
class ProviderInstance:
    """Runtime record of one configured backend connection.

    ``error_count`` is observational only; routing never looks at it.
    """

    config: ProviderInstanceConfig
    backend: ChatBackend
    status: InstanceStatus = InstanceStatus.ACTIVE
    last_error_at: float | None = None
    error_count: int = 0

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def is_active(self) -> bool:
        return self.status == InstanceStatus.ACTIVE


@dataclass(frozen=True)
class RoundRobinSelection:
    """An instance picked by round-robin, paired with its default model."""

    instance: ProviderInstance
    model: str


class ProviderRegistry:
    """Registry of provider instances.

    Instances keep configuration declaration order, which is the exhaust
    priority order. All state changes (recovery, failure marking and the
    round-robin cursor) happen under a single lock so concurrent requests
    never lose a transition or pick the same round-robin slot twice.
    """

    def __init__(
        self,
        config: ProvidersConfig,
        backend_builder: BackendBuilder,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Build the registry.

        An entry whose backend cannot be built is logged and left out;
        an empty registry is valid.

        Args:
            config: Validated providers configuration.
            backend_builder: Creates the chat backend for an instance config.
            clock: Wall-clock source in epoch seconds.
        """
        self._routing = config.routing
        self._clock = clock
        self._lock = threading.Lock()
        self._cursor = 0
        self._instances: dict[str, ProviderInstance] = {}

        for instance_config in config.providers:
            if instance_config.id in self._instances:
                logger.warning(
                    "Duplicate provider id, skipping",
                    extra={"instance": instance_config.id},
                )
                continue

            try:
                backend = backend_builder(instance_config)
            except Exception:
                logger.exception(
                    "Failed to create provider instance",
                    extra={"instance": instance_config.id},
                )
                continue

            self._instances[instance_config.id] = ProviderInstance(
                config=instance_config,
                backend=backend,
            )
            logger.info(
                "Provider instance registered",
                extra={
                    "instance": instance_config.id,
                    "type": instance_config.type.value,
                    "models": len(instance_config.models),
                },
            )

    # -- Recovery --------------------------------------------------------

    def _recover_expired_locked(self) -> None:
        now = self._clock()
        for instance in self._instances.values():
            if (
                instance.status != InstanceStatus.ACTIVE
                and instance.last_error_at is not None
                and now - instance.last_error_at >= self._routing.retry_after_seconds
            ):
                instance.status = InstanceStatus.ACTIVE
                instance.error_count = 0
                instance.last_error_at = None
                logger.info(
                    "Provider instance recovered",
                    extra={"instance": instance.id},
                )

    def recover_expired(self) -> None:
        """Re-activate instances whose retry window has elapsed."""
        with self._lock:
            self._recover_expired_locked()

    # -- Selection -------------------------------------------------------

    def get_active_for_model(self, model: str) -> list[ProviderInstance]:
        """Active instances declaring ``model``, in declaration order.

        Args:
            model: Requested model identifier.

        Returns:
            Ordered list of instances to try for the exhaust strategy.
        """
        with self._lock:
            self._recover_expired_locked()
            return [
                instance
                for instance in self._instances.values()
                if instance.is_active and instance.config.supports_model(model)
            ]

    def get_next_round_robin(self) -> RoundRobinSelection | None:
        """Pick the next active instance regardless of model.

        The rotation runs over the instances active at call time, so an
        instance recovering or failing between calls changes the set used
        by the next call.

        Returns:
            The instance and its first declared model, or None when no
            instance is active.
        """
        with self._lock:
            self._recover_expired_locked()
            active = [i for i in self._instances.values() if i.is_active]
            if not active:
                return None

            instance = active[self._cursor % len(active)]
            self._cursor = (self._cursor + 1) % len(active)

        return RoundRobinSelection(instance=instance, model=instance.config.default_model)

    # -- State management ------------------------------------------------

    def mark_failed(self, instance_id: str) -> None:
        """Take an instance out of rotation until its retry window passes.

        Unknown ids are ignored.

        Args:
            instance_id: Id of the instance that failed.
        """
        with self._lock:
            instance = self._instances.get(instance_id)
            if instance is None:
                return

            instance.status = InstanceStatus.RATE_LIMITED
            instance.last_error_at = self._clock()
            instance.error_count += 1
            error_count = instance.error_count

        logger.warning(
            "Provider instance marked as rate-limited",
            extra={"instance": instance_id, "error_count": error_count},
        )

    # -- Queries ---------------------------------------------------------

    def get_all_models(self) -> list[ModelCard]:
        """Every declared model plus the virtual round-robin model.

        Each model is attributed to the backend kind of the first instance
        declaring it. The virtual model comes first.
        """
        owners: dict[str, str] = {}
        for instance in self._instances.values():
            for model in instance.config.models:
                owners.setdefault(model, instance.config.type.value)

        created = int(self._clock())
        cards = [ModelCard(id=AUTO_MODEL_ID, created=created, owned_by=AUTO_MODEL_OWNER)]
        cards.extend(
            ModelCard(id=model, created=created, owned_by=owner)
            for model, owner in owners.items()
        )
        return cards

    def has_model(self, model: str) -> bool:
        """Whether any instance, active or not, declares ``model``."""
        return any(i.config.supports_model(model) for i in self._instances.values())

    def get_instance(self, instance_id: str) -> ProviderInstance | None:
        """Look up an instance by id."""
        return self._instances.get(instance_id)

    def get_all_instances(self) -> list[ProviderInstance]:
        """Every registered instance, in declaration order."""
        return list(self._instances.values())

    @property
    def routing_config(self) -> RoutingConfig:
        return self._routing

    @property
    def default_strategy(self) -> RoutingStrategy:
        """The configured default strategy (informational only)."""
        return self._routing.default_strategy

    @property
    def size(self) -> int:
        return len(self._instances)

    def __len__(self) -> int:
        return len(self._instances)

    # -- Lifecycle -------------------------------------------------------

    async def aclose(self) -> None:
        """Close every backend's resources."""
        for instance in self._instances.values():
            try:
                await instance.backend.aclose()
            except Exception:
                logger.exception(
                    "Failed to close provider backend",
                    extra={"instance": instance.id},
                )
