"""Model name registry.

Maps public model names (what callers send and receive) to CLI model aliases
(what `claude --model` accepts), and collapses full model identifiers such as
"claude-sonnet-4-5-20250929" to their public family name.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Mapping

DEFAULT_CLI_ALIAS = "opus"
DEFAULT_MODEL_NAME = "claude-sonnet-4"

_PROVIDER_PREFIX = "claude-code-cli/"

# Registry mapping public model names to CLI aliases
_CLI_ALIASES: Mapping[str, str] = MappingProxyType(
    {
        "claude-opus-4": "opus",
        "claude-sonnet-4": "sonnet",
        "claude-haiku-4": "haiku",
        "claude-code-cli/claude-opus-4": "opus",
        "claude-code-cli/claude-sonnet-4": "sonnet",
        "claude-code-cli/claude-haiku-4": "haiku",
        "opus": "opus",
        "sonnet": "sonnet",
        "haiku": "haiku",
    }
)

# Checked in order; first substring match wins.
_FAMILIES: tuple[tuple[str, str, str], ...] = (
    ("opus", "opus", "claude-opus-4"),
    ("sonnet", "sonnet", "claude-sonnet-4"),
    ("haiku", "haiku", "claude-haiku-4"),
)

_MODEL_LIMITS: Mapping[str, tuple[int, int]] = MappingProxyType(
    {
        # model id -> (context_window, max_tokens)
        "claude-opus-4": (1_000_000, 128_000),
        "claude-sonnet-4": (200_000, 64_000),
        "claude-haiku-4": (200_000, 64_000),
    }
)


def resolve_cli_alias(model: str | None) -> str:
    """
    Resolve a requested model name to a CLI alias.

    Lookup order: exact match, exact match after stripping the
    "claude-code-cli/" prefix, then a family substring match (covers
    date-suffixed ids like "claude-opus-4-20250514"). Unknown or missing
    names resolve to "opus".
    """
    if model is None:
        return DEFAULT_CLI_ALIAS

    alias = _CLI_ALIASES.get(model)
    if alias is not None:
        return alias

    if model.startswith(_PROVIDER_PREFIX):
        alias = _CLI_ALIASES.get(model[len(_PROVIDER_PREFIX) :])
        if alias is not None:
            return alias

    for needle, cli_alias, _ in _FAMILIES:
        if needle in model:
            return cli_alias
    return DEFAULT_CLI_ALIAS


def normalize_model_name(model: str | None) -> str:
    """Collapse a full model identifier to its public family name."""
    if model:
        for needle, _, family in _FAMILIES:
            if needle in model:
                return family
    return DEFAULT_MODEL_NAME


def list_models(*, created: int) -> list[dict[str, Any]]:
    """Return the public model list (OpenAI `/v1/models` entries)."""
    return [
        {
            "id": model_id,
            "object": "model",
            "owned_by": "anthropic",
            "created": created,
            "context_window": context_window,
            "max_tokens": max_tokens,
        }
        for model_id, (context_window, max_tokens) in _MODEL_LIMITS.items()
    ]
