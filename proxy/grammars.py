"""
XML grammars understood by the proxy

- UPnP event bodies sent by devices with NOTIFY:

    <e:propertyset xmlns:e="urn:schemas-upnp-org:event-1-0">
      <e:property><Status>1</Status></e:property>
    </e:propertyset>

- Registration bodies sent by consumers with PUT:

    <subscription expiry="1700000000">
      <variable name="Status" host="localhost" deviceId="12"
                serviceId="urn:..." action="SetStatus" parameter="newStatus"
                sidParameter="sid"/>
    </subscription>
"""
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from core.xml_reader import Path, XmlGrammar, XmlReadError, local_name, read_document
from proxy.subscriptions import ProxyTarget

UPNP_EVENT_NS = "urn:schemas-upnp-org:event-1-0"
PROPERTYSET_TAG = f"{{{UPNP_EVENT_NS}}}propertyset"
PROPERTY_TAG = f"{{{UPNP_EVENT_NS}}}property"

# (XML attribute, ProxyTarget field)
_REQUIRED_ATTRIBUTES = (
    ("name", "variable_name"),
    ("deviceId", "device_id"),
    ("serviceId", "service_id"),
    ("action", "action"),
    ("parameter", "parameter"),
)


class NotifyGrammar(XmlGrammar):
    """Collects propertyset/property/<variable> text into {variable: value}"""

    def __init__(self):
        self._variables: Dict[str, str] = {}
        self._current: Optional[str] = None

    @staticmethod
    def _is_variable(path: Path) -> bool:
        return len(path) == 3 and path[0] == PROPERTYSET_TAG and path[1] == PROPERTY_TAG

    def start_element(self, path, attrib):
        if self._is_variable(path):
            self._current = local_name(path[-1])
            self._variables[self._current] = ""

    def end_element(self, path):
        if len(path) == 3:
            self._current = None

    def character_data(self, path, text):
        if self._current is not None and len(path) == 3:
            self._variables[self._current] += text

    def result(self) -> Dict[str, str]:
        return self._variables


@dataclass
class Registration:
    expiry: Optional[float] = None
    targets: List[ProxyTarget] = field(default_factory=list)


class RegistrationGrammar(XmlGrammar):
    """Collects the expiry and the <variable> entries of a <subscription>"""

    def __init__(self):
        self._expiry: Optional[str] = None
        self._variables: List[Dict[str, str]] = []

    def start_element(self, path, attrib):
        if path == ("subscription",):
            self._expiry = attrib.get("expiry")
        elif path == ("subscription", "variable"):
            self._variables.append(attrib)

    def result(self):
        return self._expiry, self._variables


def _parse_expiry(raw: Optional[str]) -> Optional[float]:
    if raw is None:
        return None
    try:
        expiry = float(raw)
    except ValueError:
        return None
    return expiry if math.isfinite(expiry) else None


def _to_target(attrib: Dict[str, str]) -> ProxyTarget:
    missing = [name for name, _ in _REQUIRED_ATTRIBUTES if not attrib.get(name)]
    if missing:
        raise XmlReadError(f"<variable> missing attribute(s): {', '.join(missing)}")
    kwargs = {field_name: attrib[name] for name, field_name in _REQUIRED_ATTRIBUTES}
    return ProxyTarget(
        host=attrib.get("host") or "localhost",
        sid_parameter=attrib.get("sidParameter") or None,
        **kwargs,
    )


def sanitize_notify_body(body: bytes) -> bytes:
    # Some devices (WeMo) put NUL bytes in the event XML
    return body.replace(b"\x00", b" ")


def read_notify_body(body: bytes) -> Dict[str, str]:
    """
    Parse a UPnP NOTIFY body.

    Returns:
        {variable name: value}

    Raises:
        XmlReadError: Malformed body
    """
    return read_document(sanitize_notify_body(body), NotifyGrammar())


def read_registration_body(body: bytes) -> Registration:
    """
    Parse a registration (PUT) body.

    Raises:
        XmlReadError: Malformed body or incomplete <variable> entry
    """
    raw_expiry, variables = read_document(body, RegistrationGrammar())
    targets = [_to_target(attrib) for attrib in variables]
    return Registration(_parse_expiry(raw_expiry), targets)
