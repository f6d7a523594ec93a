"""
Subscription Registry - in-memory subscription state

Each subscription is keyed by the SID the UPnP device handed out. It holds
the last value seen for every variable the device reported, the proxy
targets consumers registered for it, and an absolute expiry time.

Subscriptions appear implicitly: whichever of the device (NOTIFY) and the
consumer (PUT) turns up first creates the entry, and the other side finds
it already there.
"""
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, TYPE_CHECKING

from core.utils import log_info, log_debug
from config import DEFAULT_SUBSCRIPTION_TTL

if TYPE_CHECKING:
    from proxy.dispatcher import Dispatcher


@dataclass(frozen=True)
class ProxyTarget:
    """
    One consumer's interest in one variable of a subscription.

    Attributes:
        variable_name: UPnP state variable to forward
        device_id: Device number whose action is invoked
        service_id: Service that owns the action
        action: Action to invoke
        parameter: Action parameter receiving the variable's value
        host: Host running the action API
        sid_parameter: Optional action parameter receiving the SID
    """
    variable_name: str
    device_id: str
    service_id: str
    action: str
    parameter: str
    host: str = "localhost"
    sid_parameter: Optional[str] = None


@dataclass
class Subscription:
    sid: str
    expiry: float
    variables: Dict[str, str] = field(default_factory=dict)
    proxy_targets: List[ProxyTarget] = field(default_factory=list)


class Registry:
    """
    Store of all known subscriptions.

    Value changes and new registrations are turned into notifications on
    the dispatcher passed in at construction time.
    """

    def __init__(
        self,
        dispatcher: "Dispatcher",
        default_ttl: float = DEFAULT_SUBSCRIPTION_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self._dispatcher = dispatcher
        self._default_ttl = default_ttl
        self._clock = clock
        self._subscriptions: Dict[str, Subscription] = {}

    def __contains__(self, sid: str) -> bool:
        return sid in self._subscriptions

    def __len__(self) -> int:
        return len(self._subscriptions)

    def get(self, sid: str) -> Optional[Subscription]:
        return self._subscriptions.get(sid)

    def ensure(
        self,
        sid: str,
        expiry: Optional[float] = None,
        clear_proxy_targets: bool = False,
    ) -> Subscription:
        """
        Create the subscription if it is unknown, otherwise update it.

        Args:
            sid: Subscription ID
            expiry: New absolute expiry; unknown subscriptions without one
                live for the default TTL, known ones keep their expiry
            clear_proxy_targets: Drop all registered proxy targets
        """
        subscription = self._subscriptions.get(sid)
        if subscription is None:
            if expiry is None:
                expiry = self._clock() + self._default_ttl
            subscription = Subscription(sid, expiry)
            self._subscriptions[sid] = subscription
            log_debug("Registry", f"New subscription {sid} (expires {expiry:.0f})")
        elif expiry is not None:
            subscription.expiry = expiry
        if clear_proxy_targets:
            subscription.proxy_targets = []
        return subscription

    def record_variable(self, sid: str, name: str, value: str):
        """Store a value reported by the device and notify interested targets"""
        subscription = self.ensure(sid)
        subscription.variables[name] = value
        log_info("Registry", f"Updated variable in subscription {sid}: {name} = {value}")
        for target in subscription.proxy_targets:
            if target.variable_name == name:
                self._dispatcher.enqueue(sid, target, value)

    def add_proxy_target(self, sid: str, target: ProxyTarget):
        """
        Register a consumer for a variable.

        If the device already reported a value for that variable, the new
        target gets it straight away instead of waiting for the next event.
        """
        subscription = self.ensure(sid)
        subscription.proxy_targets.append(target)
        log_info("Registry", f"Will forward events for {sid}/{target.variable_name}")
        value = subscription.variables.get(target.variable_name)
        if value is not None:
            self._dispatcher.enqueue(sid, target, value)

    def remove(self, sid: str) -> bool:
        """Forget a subscription; returns whether it existed"""
        removed = self._subscriptions.pop(sid, None) is not None
        if removed:
            log_info("Registry", f"Removed subscription {sid}")
        return removed

    def purge_expired(self, now: Optional[float] = None) -> List[str]:
        """Drop every subscription whose expiry lies strictly before now"""
        if now is None:
            now = self._clock()
        expired = [sid for sid, sub in self._subscriptions.items() if sub.expiry < now]
        for sid in expired:
            del self._subscriptions[sid]
            log_debug("Registry", f"Subscription expired: {sid}")
        return expired
