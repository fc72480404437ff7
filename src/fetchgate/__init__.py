from .config import DispatcherSettings as DispatcherSettings
from .dispatcher import Dispatcher as Dispatcher
from .exceptions import DecodeError as DecodeError
from .exceptions import FetchGateError as FetchGateError
from .exceptions import HTTPStatusError as HTTPStatusError
from .exceptions import InvalidURL as InvalidURL
from .exceptions import TransportError as TransportError
from .transport import HttpxTransport as HttpxTransport
from .transport import RequestOptions as RequestOptions
from .transport import Transport as Transport

__all__ = [
    "Dispatcher",
    "DispatcherSettings",
    "RequestOptions",
    "Transport",
    "HttpxTransport",
    "FetchGateError",
    "InvalidURL",
    "TransportError",
    "HTTPStatusError",
    "DecodeError",
]
