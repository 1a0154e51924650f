"""
Provider fallback chain
Tries data sources in priority order and degrades to a default value
when every source fails. Provider errors never reach the caller.
"""
import copy
import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence

logger = logging.getLogger(__name__)

Provider = Callable[..., Awaitable[Any]]


def is_non_empty(result: Any) -> bool:
    if result is None:
        return False
    if isinstance(result, (list, tuple, dict, set, str)):
        return len(result) > 0
    return True


class ProviderChain:
    """
    Ordered list of async providers with a terminal default.

    Each provider is awaited at most once per run. A provider counts as
    failed when it raises, returns None, or returns a value rejected by
    `is_valid`. The first accepted result wins.
    """

    def __init__(
        self,
        providers: Sequence[Provider],
        default: Any,
        name: str = "provider-chain",
        is_valid: Callable[[Any], bool] = is_non_empty,
    ):
        self.providers: List[Provider] = list(providers)
        self.default = default
        self.name = name
        self.is_valid = is_valid
        self.last_source: Optional[str] = None

    async def run(self, *args, **kwargs) -> Any:
        for provider in self.providers:
            label = getattr(provider, "__name__", repr(provider))
            try:
                result = await provider(*args, **kwargs)
            except Exception as e:
                logger.warning(f"[{self.name}] {label} failed: {e}")
                continue

            if not self.is_valid(result):
                logger.debug(f"[{self.name}] {label} returned no usable data")
                continue

            self.last_source = label
            return result

        logger.warning(f"[{self.name}] all {len(self.providers)} providers failed, using default")
        self.last_source = None
        return copy.deepcopy(self.default)
