# Core module
from .utils import log_info, log_debug, log_warning, log_error, set_log_level
from .http_codec import Method, Request, Response, HTTPError
from .xml_reader import XmlGrammar, XmlReadError, read_document
