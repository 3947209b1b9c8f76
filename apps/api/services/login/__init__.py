from .persistence import LoginRequestPersister, get_login_request_persister
from .request import LoginRequest, RequestMethod, new_login_request
from .settings import LoginSettings, get_login_settings

__all__ = [
    "LoginRequest",
    "LoginRequestPersister",
    "LoginSettings",
    "RequestMethod",
    "get_login_request_persister",
    "get_login_settings",
    "new_login_request",
]
