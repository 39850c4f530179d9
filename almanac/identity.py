import functools
import logging

from flask import g
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from .errors import Unauthenticated

log = logging.getLogger(__name__)


def resolve_user_id():
    """Return the verified user id of the current request or raise Unauthenticated.

    Only the signed bearer token is consulted; nothing from the body, query
    string or path can influence the result.
    """
    try:
        verify_jwt_in_request()
    except (JWTExtendedException, PyJWTError) as e:
        log.debug("Rejected session: %s", e)
        raise Unauthenticated() from None

    user_id = get_jwt_identity()
    if not isinstance(user_id, str) or not user_id.strip():
        raise Unauthenticated()
    return user_id


def authenticated(view):
    """Resolve the caller and hand the id to the view as its first argument."""
    @functools.wraps(view)
    def wrapper(*args, **kwargs):
        user_id = resolve_user_id()
        g.user_id = user_id
        return view(user_id, *args, **kwargs)
    return wrapper
