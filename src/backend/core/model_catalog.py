"""
Model catalog lookups: context window, provider and provider-side name.

The catalog is built from MODEL_CONFIGS and the deployment's settings, so a
stale context window can be corrected with MODEL_CONTEXT_WINDOWS instead of a
release.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from core.constants import (
    DEFAULT_CONTEXT_WINDOW,
    LEGACY_MODEL_ALIASES,
    MODEL_CONFIGS,
    ModelConfig,
    Settings,
)


class ModelCatalog:
    """Read-only view over the configured models."""

    def __init__(
        self,
        configs: Iterable[ModelConfig] = MODEL_CONFIGS,
        *,
        context_window_overrides: Mapping[str, int] | None = None,
        default_context_window: int = DEFAULT_CONTEXT_WINDOW,
        aliases: Mapping[str, str] | None = None,
    ) -> None:
        self._configs = {config.id: config for config in configs}
        self._overrides = dict(context_window_overrides or {})
        self._default_context_window = default_context_window
        self._aliases = dict(LEGACY_MODEL_ALIASES if aliases is None else aliases)

    @classmethod
    def from_settings(cls, settings: Settings) -> ModelCatalog:
        """Build the catalog with the deployment's overrides applied."""
        return cls(
            context_window_overrides=settings.model_context_windows,
            default_context_window=settings.default_context_window,
        )

    @property
    def default_context_window(self) -> int:
        return self._default_context_window

    def resolve(self, model_id: str) -> str:
        """Map a legacy identifier to its current catalog id."""
        return self._aliases.get(model_id, model_id)

    def get(self, model_id: str) -> ModelConfig | None:
        """Catalog entry for a model id (legacy ids resolved), or None."""
        return self._configs.get(self.resolve(model_id))

    def context_window(self, model_id: str) -> int:
        """Context window for a model, falling back to the default for unknown ids."""
        resolved = self.resolve(model_id)
        if resolved in self._overrides:
            return self._overrides[resolved]
        if model_id in self._overrides:
            return self._overrides[model_id]
        config = self._configs.get(resolved)
        return config.context_window if config else self._default_context_window

    def api_model_name(self, model_id: str) -> str:
        """Name to send to the provider API."""
        config = self.get(model_id)
        if config is None:
            return model_id
        return config.api_model or config.id

    def __contains__(self, model_id: object) -> bool:
        return isinstance(model_id, str) and self.resolve(model_id) in self._configs
