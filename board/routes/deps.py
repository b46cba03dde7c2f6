from starlette.requests import HTTPConnection
from .. import config
from ..backend import Backend, get_backend
from ..store import Variant


def board_backend(conn: HTTPConnection) -> Backend:
    state = conn.app.state
    if getattr(state, 'backend', None) is None:
        state.backend = get_backend()
    return state.backend


def board_variant() -> Variant:
    return Variant(config.FEED_VARIANT)
