"""
Notification Dispatcher - queued action calls with bounded retry

Every notification is a single GET against the consumer host's action API:

    http://{host}:3480/data_request?id=lu_action&DeviceNum=..&serviceId=..
        &action=..&{parameter}={value}[&{sidParameter}={sid}]

Failed calls are retried a few times after a short random delay and then
dropped. Nothing is persisted.
"""
import asyncio
import random
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple, TYPE_CHECKING
from urllib.parse import quote

import aiohttp
from yarl import URL

from core.utils import log_info, log_debug, log_warning
from config import (
    ACTION_PORT, DELIVERY_TIMEOUT, DEVICE_NOT_READY_MARKER, LISTEN_TIMEOUT,
    NOTIFY_RETRIES, RETRY_DELAY_MIN, RETRY_DELAY_MAX,
)

if TYPE_CHECKING:
    from proxy.subscriptions import ProxyTarget


def _escape(value: str) -> str:
    return quote(str(value), safe="")


def build_action_url(sid: str, target: "ProxyTarget", value: str) -> str:
    """Build the action call that carries a variable's value to a target"""
    url = (
        f"http://{target.host}:{ACTION_PORT}/data_request?id=lu_action"
        f"&DeviceNum={_escape(target.device_id)}"
        f"&serviceId={_escape(target.service_id)}"
        f"&action={_escape(target.action)}"
        f"&{_escape(target.parameter)}={_escape(value)}"
    )
    if target.sid_parameter:
        url += f"&{_escape(target.sid_parameter)}={_escape(sid)}"
    return url


def is_device_not_ready(body: str) -> bool:
    """
    Detect a logical failure reported with a success status.

    The action API answers "200 OK" even when the target device is busy,
    so the body text is the only signal.
    """
    return DEVICE_NOT_READY_MARKER in body


@dataclass
class NotificationTask:
    url: str
    not_before: float
    retries_remaining: int = NOTIFY_RETRIES


class Dispatcher:
    """
    Queue of pending notifications.

    drain_due() is called once per loop iteration; it sends whatever is
    due and tells the caller how long it may sleep before the next pass.
    """

    def __init__(
        self,
        max_wait: float = LISTEN_TIMEOUT,
        retries: int = NOTIFY_RETRIES,
        retry_delay: Tuple[int, int] = (RETRY_DELAY_MIN, RETRY_DELAY_MAX),
        timeout: float = DELIVERY_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ):
        self._max_wait = max_wait
        self._retries = retries
        self._retry_delay = retry_delay
        self._timeout = timeout
        self._clock = clock
        self._queue: List[NotificationTask] = []
        self._session: Optional[aiohttp.ClientSession] = None

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def pending(self) -> List[NotificationTask]:
        return list(self._queue)

    def enqueue(self, sid: str, target: "ProxyTarget", value: str) -> NotificationTask:
        """Queue a notification; it is due immediately"""
        log_info("Dispatcher", f"Queueing notification for {sid}/{target.variable_name} = {value}")
        task = NotificationTask(
            url=build_action_url(sid, target, value),
            not_before=self._clock(),
            retries_remaining=self._retries,
        )
        self._queue.append(task)
        return task

    async def drain_due(self, now: Optional[float] = None) -> float:
        """
        Make one pass over the queue.

        Each queued task is looked at once: tasks that are not due yet are
        kept, due tasks are delivered, and failed deliveries are requeued
        with a random delay until their retries run out.

        Returns:
            Seconds until the next pass is useful, between 1 and max_wait
        """
        if now is None:
            now = self._clock()
        snapshot, self._queue = self._queue, []
        save_for_later: List[NotificationTask] = []
        next_wait = self._max_wait

        try:
            while snapshot:
                task = snapshot.pop(0)
                if task.not_before > now:
                    log_debug("Dispatcher", "Notification not due yet, try again later")
                    save_for_later.append(task)
                    next_wait = min(next_wait, 1)
                    continue

                if await self.deliver(task):
                    continue

                if task.retries_remaining > 0:
                    delay = random.randint(*self._retry_delay)
                    task.not_before = now + delay
                    task.retries_remaining -= 1
                    next_wait = min(next_wait, delay)
                    save_for_later.append(task)
                else:
                    log_warning("Dispatcher", f"Giving up on notification: {task.url}")
        finally:
            # A task that blew up is dropped; the rest stay queued
            self._queue = save_for_later + snapshot + self._queue
        return max(1, min(next_wait, self._max_wait))

    async def deliver(self, task: NotificationTask) -> bool:
        """Send one notification; True on success"""
        log_info("Dispatcher", f"Sending notification: {task.url}")
        try:
            status, body = await self._fetch(task.url)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            log_warning("Dispatcher", f"Notification failed: {e!r}")
            return False
        if status >= 400:
            log_warning("Dispatcher", f"Notification failed ({status})")
            return False
        if is_device_not_ready(body):
            log_warning("Dispatcher", "Notification failed: device not ready")
            return False
        return True

    async def _fetch(self, url: str) -> Tuple[int, str]:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout)
            )
        # Already escaped; keep yarl from requoting it
        async with self._session.get(URL(url, encoded=True)) as resp:
            return resp.status, await resp.text(errors="replace")

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
