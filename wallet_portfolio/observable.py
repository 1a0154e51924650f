"""
Publish/subscribe value holder
One current value, many observers. Consumers get a Subscription handle
and never the holder's internals.
"""
import copy
import logging
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription:
    def __init__(self, holder: "ValueHolder", token: int):
        self._holder = holder
        self._token = token

    @property
    def active(self) -> bool:
        return self._holder is not None and self._token in self._holder._listeners

    def unsubscribe(self) -> None:
        if self._holder is not None:
            self._holder._listeners.pop(self._token, None)
            self._holder = None


class ValueHolder(Generic[T]):
    """
    Holds the latest value and replays it to new subscribers.
    Every publish notifies, even when the value did not change.
    """

    def __init__(self, initial: T):
        self._value = initial
        self._listeners: Dict[int, Callable[[T], Any]] = {}
        self._next_token = 0

    @property
    def value(self) -> T:
        return copy.deepcopy(self._value)

    def publish(self, value: T) -> None:
        self._value = value
        for callback in list(self._listeners.values()):
            self._notify(callback, value)

    def subscribe(self, callback: Callable[[T], Any], replay: bool = True) -> Subscription:
        token = self._next_token
        self._next_token += 1
        self._listeners[token] = callback
        if replay:
            self._notify(callback, self._value)
        return Subscription(self, token)

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    def _notify(self, callback: Callable[[T], Any], value: Optional[T]) -> None:
        try:
            callback(copy.deepcopy(value))
        except Exception as e:
            logger.warning(f"Subscriber callback failed: {e}")
