"""
Store configuration.

Values are read from the environment by StoreConfig.from_env(); callbacks can
only be set in code.
"""

import os
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

# on_side_effect_error(exc, action)
SideEffectErrorCallback = Callable[[BaseException, Any], None]


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class StoreConfig:
    """
    Behaviour switches of a store.

    Fields:
        name: Store name, used as trace_id in logs
        rollback_on_error: Discard the whole transition when a handler fails.
            When False the branches that did update are published.
        on_side_effect_error: Called with (exception, action) when a side effect fails
    """
    name: str = "store"
    rollback_on_error: bool = True
    on_side_effect_error: Optional[SideEffectErrorCallback] = None

    @staticmethod
    def from_env() -> "StoreConfig":
        return StoreConfig(
            name=os.getenv("TREESTORE_STORE_NAME", "store"),
            rollback_on_error=_env_flag("TREESTORE_ROLLBACK_ON_ERROR", "1"),
        )

    def with_overrides(self, **changes: Any) -> "StoreConfig":
        """Copy of this config with the given non-None fields replaced."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})
