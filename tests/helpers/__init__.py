from .exposition import gauge_samples, parse_exposition
from .invoker import LIST_ARGS, LIST_BACKUPS_ARGS, FakeInvoker, load_asset, with_backups
from .wsgi import WsgiResponse, call_wsgi

__all__ = [
    "LIST_ARGS",
    "LIST_BACKUPS_ARGS",
    "FakeInvoker",
    "WsgiResponse",
    "call_wsgi",
    "gauge_samples",
    "load_asset",
    "parse_exposition",
    "with_backups",
]
