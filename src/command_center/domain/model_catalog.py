"""Model Catalog - Configuration-Driven Backend Model Management.

Provides type-safe, validated management of the reasoning models the
command center can route to. The catalog is loaded from JSON configuration
and the registry built on top of it holds the one mutable piece of model
state: which config is active.

Architecture:
    ModelCatalog: Root container, loaded from model_metadata.json
    ├─ ModelConfig: One backend model with capability flags and cost data
    └─ default: Designated fallback identifier
    ModelRegistry: Runtime catalog + active pointer + provider backends

Key Features:
    - O(1) Model Lookup: identifiers (id + aliases) flattened into a dict
    - Validation: Pydantic rejects duplicate identifiers and a missing default
    - Safe Switching: set_active() never leaves the pointer dangling
    - Provider Agnostic: backends are bound per ModelProvider, not per model
"""

from __future__ import annotations

import asyncio
import json
import threading
from collections.abc import Iterable, Mapping, Sequence
from functools import cached_property
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from .domain_type import ModelProvider
from .domain_value import BackendResponse, Turn
from .errors import (
    BackendError,
    BackendMalformedResponse,
    BackendTimeout,
    BackendUnavailable,
    UnknownModelIdentifier,
)

if TYPE_CHECKING:
    from .backends import InferenceOptions, ModelBackend
    from .tools import ToolDeclaration


class ModelConfig(BaseModel):
    """Backend Model Configuration.

    Immutable once loaded. Multiple identifiers (id, aliases) can all
    resolve to the same config.

    Attributes:
        id: Canonical identifier (e.g., "gpt-4o")
        name: Display name
        provider: Which backend answers for this model
        api_id: Provider's model string (usually same as id)
        supports_tools: Whether the model accepts function declarations
        supports_vision: Whether the model accepts image inputs
        max_context_tokens: Context window size
        cost_per_1k_input: USD per 1000 input tokens
        cost_per_1k_output: USD per 1000 output tokens
        capabilities: Free-form capability labels for routing/introspection
        aliases: Alternative names that resolve to this config
    """

    id: str = Field(min_length=1)
    name: str
    provider: ModelProvider
    api_id: str
    supports_tools: bool = False
    supports_vision: bool = False
    max_context_tokens: int = Field(default=8192, gt=0)
    cost_per_1k_input: float = Field(default=0.0, ge=0)
    cost_per_1k_output: float = Field(default=0.0, ge=0)
    capabilities: tuple[str, ...] = ()
    aliases: tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True)

    @computed_field
    @property
    def identifiers(self) -> frozenset[str]:
        """All valid lookup keys for this config: {id, *aliases}."""
        return frozenset({self.id, *self.aliases})

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        """Estimated USD cost of one call with the given token counts."""
        return (input_tokens / 1000) * self.cost_per_1k_input + (output_tokens / 1000) * self.cost_per_1k_output


class ModelCatalog(BaseModel):
    """Validated set of model configs plus the designated default."""

    default: str
    models: tuple[ModelConfig, ...]

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def check_identifiers(self) -> ModelCatalog:
        """Reject duplicate identifiers and a default that doesn't resolve.

        Raises:
            ValueError: If any identifier appears in two configs, or the
                default names no config
        """
        all_ids = [identifier for config in self.models for identifier in config.identifiers]
        unique_ids = set(all_ids)
        if len(all_ids) != len(unique_ids):
            duplicates = [x for x in unique_ids if all_ids.count(x) > 1]
            raise ValueError(f"Duplicate model identifiers: {sorted(duplicates)}")
        if self.default not in unique_ids:
            raise ValueError(f"Default model '{self.default}' is not in the catalog")
        return self

    @cached_property
    def identifier_lookup(self) -> dict[str, ModelConfig]:
        return {identifier: config for config in self.models for identifier in config.identifiers}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModelCatalog:
        return cls.model_validate(data)

    @classmethod
    def from_json_file(cls, path: Path) -> ModelCatalog:
        """Load and validate catalog from JSON."""
        data = json.loads(path.read_text(encoding="utf-8"))
        return cls.from_dict(data)

    def find(self, identifier: str) -> ModelConfig:
        """Find a config by id or alias.

        Raises:
            UnknownModelIdentifier: If identifier not found in catalog
        """
        config = self.identifier_lookup.get(identifier.strip())
        if config is None:
            raise UnknownModelIdentifier(identifier)
        return config


class ModelRegistry:
    """Runtime Model Registry With an Active Pointer.

    Shared, read-mostly state: readers never take the lock and always see a
    consistent snapshot because writes replace the lookup dicts wholesale
    under ``_write_lock``.

    Invariant:
        get_active() always returns a valid config. If the active identifier
        stops resolving, the designated default is returned instead.
    """

    def __init__(
        self,
        configs: Iterable[ModelConfig] = (),
        *,
        default_id: str,
        backends: Mapping[ModelProvider, ModelBackend] | None = None,
    ):
        self._write_lock = threading.Lock()
        self._configs: dict[str, ModelConfig] = {}
        self._aliases: dict[str, str] = {}
        self._backends: dict[ModelProvider, ModelBackend] = dict(backends or {})
        for config in configs:
            self.register(config)
        self._default_id = self._resolve(default_id) or default_id
        self._active_id = self._default_id
        logger.info("Model registry initialized with {} models (default: {})", len(self._configs), self._default_id)

    @classmethod
    def from_catalog(
        cls,
        catalog: ModelCatalog,
        *,
        default_id: str | None = None,
        backends: Mapping[ModelProvider, ModelBackend] | None = None,
    ) -> ModelRegistry:
        """Build a registry from a loaded catalog, optionally overriding the default."""
        default = catalog.default
        if default_id:
            try:
                default = catalog.find(default_id).id
            except UnknownModelIdentifier:
                logger.warning("Configured default model '{}' not in catalog, using '{}'", default_id, default)
        return cls(catalog.models, default_id=default, backends=backends)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def _resolve(self, identifier: str) -> str | None:
        return self._aliases.get(identifier.strip())

    def register(self, config: ModelConfig) -> None:
        """Add or overwrite a config by identifier."""
        with self._write_lock:
            configs = dict(self._configs)
            aliases = {k: v for k, v in self._aliases.items() if v != config.id}
            configs[config.id] = config
            for identifier in config.identifiers:
                aliases[identifier] = config.id
            self._configs = configs
            self._aliases = aliases
        logger.debug("Registered model '{}' (provider: {})", config.id, config.provider.value)

    def unregister(self, identifier: str) -> bool:
        """Remove a config. The active pointer may be left dangling; get_active() recovers."""
        with self._write_lock:
            model_id = self._resolve(identifier)
            if model_id is None:
                return False
            self._configs = {k: v for k, v in self._configs.items() if k != model_id}
            self._aliases = {k: v for k, v in self._aliases.items() if v != model_id}
        logger.info("Unregistered model '{}'", model_id)
        return True

    def get(self, identifier: str) -> ModelConfig | None:
        model_id = self._resolve(identifier)
        return self._configs.get(model_id) if model_id else None

    def list_configs(self) -> list[ModelConfig]:
        return list(self._configs.values())

    def ids(self) -> tuple[str, ...]:
        return tuple(self._configs)

    def __contains__(self, identifier: str) -> bool:
        return self._resolve(identifier) is not None

    def __len__(self) -> int:
        return len(self._configs)

    # ------------------------------------------------------------------
    # Active pointer
    # ------------------------------------------------------------------

    @property
    def default_id(self) -> str:
        return self._default_id

    @property
    def active_id(self) -> str:
        return self._active_id

    def set_active(self, identifier: str) -> bool:
        """Switch the active model.

        Returns:
            True on success. False if identifier is unknown, in which case the
            active pointer is left unchanged.
        """
        with self._write_lock:
            model_id = self._resolve(identifier)
            if model_id is None:
                logger.error("Attempted to set unknown model '{}' (active stays '{}')", identifier, self._active_id)
                return False
            self._active_id = model_id
        logger.info("Active model changed to '{}'", model_id)
        return True

    def get_active(self) -> ModelConfig:
        """Return the active config, falling back to the default.

        Raises:
            UnknownModelIdentifier: If neither the active nor the default
                identifier resolves. No message can be produced without a model.
        """
        config = self._configs.get(self._active_id)
        if config is not None:
            return config
        logger.error("Active model '{}' no longer registered, falling back to '{}'", self._active_id, self._default_id)
        default = self._configs.get(self._default_id)
        if default is None:
            raise UnknownModelIdentifier(self._default_id)
        return default

    # ------------------------------------------------------------------
    # Backends
    # ------------------------------------------------------------------

    def register_backend(self, provider: ModelProvider, backend: ModelBackend) -> None:
        with self._write_lock:
            self._backends = {**self._backends, provider: backend}
        logger.debug("Bound backend {} to provider '{}'", type(backend).__name__, provider.value)

    def backend_for(self, provider: ModelProvider) -> ModelBackend | None:
        return self._backends.get(provider)

    async def call_backend(
        self,
        prompt: str,
        tools: Sequence[ToolDeclaration] = (),
        history: Sequence[Turn] = (),
        options: InferenceOptions | None = None,
        *,
        model: ModelConfig | None = None,
    ) -> BackendResponse:
        """Send one inference to the backend of a model's provider.

        Args:
            model: Config to run against. Defaults to the active model.

        Precondition:
            Callers must not pass a non-empty ``tools`` list when the target
            config has ``supports_tools=False``. Not enforced here, so the
            registry stays provider-agnostic.

        Raises:
            BackendUnavailable: No backend bound, or transport/provider failure
            BackendTimeout: The call exceeded ``options.timeout_seconds``
            BackendMalformedResponse: The backend returned nothing usable
            UnknownModelIdentifier: No valid active or default config
        """
        config = model or self.get_active()
        backend = self._backends.get(config.provider)
        if backend is None:
            raise BackendUnavailable(config.id, f"No backend registered for provider '{config.provider.value}'")

        timeout = options.timeout_seconds if options else None
        try:
            async with asyncio.timeout(timeout):
                response = await backend.invoke(prompt, tools, history, options, model=config)
        except BackendError:
            raise
        except TimeoutError as exc:
            raise BackendTimeout(config.id, f"Model '{config.id}' did not respond within {timeout}s") from exc
        except Exception as exc:
            raise BackendUnavailable(config.id, f"{type(exc).__name__}: {exc}") from exc

        if not isinstance(response, BackendResponse):
            raise BackendMalformedResponse(config.id, f"Backend returned {type(response).__name__}, not BackendResponse")
        if response.is_empty:
            raise BackendMalformedResponse(config.id, "Backend returned neither text nor function calls")
        return response


__all__ = [
    "ModelCatalog",
    "ModelConfig",
    "ModelRegistry",
]
