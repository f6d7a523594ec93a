"""
Proxy module - subscription state, notification delivery and the control loop
"""
from .subscriptions import Registry, Subscription, ProxyTarget
from .dispatcher import Dispatcher, NotificationTask
from .reactor import Reactor

__all__ = ["Registry", "Subscription", "ProxyTarget", "Dispatcher", "NotificationTask", "Reactor"]
