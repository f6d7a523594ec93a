"""
Request handlers - the proxy's HTTP surface

    GET    /version           API version (text/plain)
    PUT    /upnp/event/{sid}  consumer registers proxy targets for a SID
    DELETE /upnp/event/{sid}  consumer drops a SID
    NOTIFY /upnp/event        device reports variable changes (SID header)
"""
from http import HTTPStatus
from typing import TYPE_CHECKING

from core.http_codec import Method, Request, Response
from core.utils import log_info, log_warning
from core.xml_reader import XmlReadError
from config import API_VERSION
from proxy.grammars import read_notify_body, read_registration_body

if TYPE_CHECKING:
    from proxy.subscriptions import Registry


def _is_event_path(request: Request) -> bool:
    """/upnp/event/{sid}"""
    return len(request.path) == 3 and request.path[:2] == ["upnp", "event"]


class RequestHandler:
    """Routes parsed requests to the registry"""

    def __init__(self, registry: "Registry", api_version: str = API_VERSION):
        self._registry = registry
        self._api_version = api_version
        self._handlers = {
            Method.GET: self.handle_get,
            Method.PUT: self.handle_put,
            Method.DELETE: self.handle_delete,
            Method.NOTIFY: self.handle_notify,
        }

    def handle(self, request: Request) -> Response:
        handler = self._handlers.get(request.method)
        if handler is None:
            return Response(HTTPStatus.METHOD_NOT_ALLOWED)
        return handler(request)

    def handle_get(self, request: Request) -> Response:
        if request.path == ["version"]:
            return Response.text(HTTPStatus.OK, self._api_version)
        return Response(HTTPStatus.NOT_FOUND)

    def handle_put(self, request: Request) -> Response:
        """Consumer asks to be sent notifications for a subscription"""
        if not _is_event_path(request):
            return Response(HTTPStatus.FORBIDDEN)
        sid = request.path[2]
        try:
            registration = read_registration_body(request.body)
        except XmlReadError as e:
            log_warning("Handler", f"Registration for {sid} rejected: {e.reason}")
            return Response(HTTPStatus.PRECONDITION_FAILED)

        # A registration replaces whatever the consumer registered before
        self._registry.ensure(sid, registration.expiry, clear_proxy_targets=True)
        for target in registration.targets:
            self._registry.add_proxy_target(sid, target)
        return Response(HTTPStatus.OK)

    def handle_delete(self, request: Request) -> Response:
        if not _is_event_path(request):
            return Response(HTTPStatus.NOT_FOUND)
        self._registry.remove(request.path[2])
        return Response(HTTPStatus.OK)

    def handle_notify(self, request: Request) -> Response:
        """Device reports a state change"""
        if request.path != ["upnp", "event"]:
            return Response(HTTPStatus.NOT_FOUND)
        sid = request.headers.get("sid", "").strip()
        if not sid:
            log_warning("Handler", "NOTIFY without SID header")
            return Response(HTTPStatus.PRECONDITION_FAILED)
        try:
            variables = read_notify_body(request.body)
        except XmlReadError as e:
            log_warning("Handler", f"Event for {sid} rejected: {e.reason}")
            return Response(HTTPStatus.PRECONDITION_FAILED)

        if not variables:
            log_info("Handler", f"Event for {sid} carried no variables")
        for name, value in variables.items():
            self._registry.record_variable(sid, name, value)
        return Response(HTTPStatus.OK)
