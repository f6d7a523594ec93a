"""
Streaming XML event reader

A small SAX-style engine on top of an lxml parser target. The engine keeps
the current element path as a stack and hands every event, together with
that path, to a grammar object. Grammars only decide what to capture; they
never see a tree.

Paths are tuples of Clark-notation tags, e.g.
("{urn:schemas-upnp-org:event-1-0}propertyset", "{...}property", "Status").
"""
from typing import Any, Dict, List, Tuple

from lxml import etree

Path = Tuple[str, ...]


class XmlReadError(Exception):
    """Document is not well-formed or does not fit the grammar"""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class XmlGrammar:
    """
    Base class for grammars driven by read_document().

    Subclasses override the hooks they need and return their captured
    data from result().
    """

    def start_element(self, path: Path, attrib: Dict[str, str]):
        pass

    def end_element(self, path: Path):
        pass

    def character_data(self, path: Path, text: str):
        pass

    def result(self) -> Any:
        raise NotImplementedError


class _PathTracker:
    """lxml parser target maintaining the element path stack"""

    def __init__(self, grammar: XmlGrammar):
        self._grammar = grammar
        self._path: List[str] = []

    def start(self, tag, attrib):
        self._path.append(tag)
        self._grammar.start_element(tuple(self._path), dict(attrib))

    def end(self, tag):
        self._grammar.end_element(tuple(self._path))
        self._path.pop()

    def data(self, text):
        self._grammar.character_data(tuple(self._path), text)

    def close(self):
        return self._grammar.result()


def local_name(tag: str) -> str:
    """Strip the namespace from a Clark-notation tag"""
    return etree.QName(tag).localname


def read_document(data: bytes, grammar: XmlGrammar) -> Any:
    """
    Stream a document through a grammar.

    Args:
        data: Raw XML document
        grammar: Grammar receiving the element events

    Returns:
        Whatever grammar.result() returns

    Raises:
        XmlReadError: The document is malformed
    """
    if not data or not data.strip():
        raise XmlReadError("Document is empty")
    parser = etree.XMLParser(
        target=_PathTracker(grammar),
        resolve_entities=False,
        no_network=True,
    )
    try:
        return etree.fromstring(data, parser)
    except etree.LxmlError as e:
        raise XmlReadError(str(e) or "Malformed XML")
