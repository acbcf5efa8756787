from functools import wraps

from flask import abort
from flask_login import current_user

from app.errors import Forbidden


def role_required(*roles):
    """Only let authenticated parties with one of ``roles`` through."""

    def wrapper(func):
        @wraps(func)
        def inner(*args, **kwargs):
            if not current_user.is_authenticated:
                abort(401)
            if current_user.role not in roles:
                raise Forbidden(f"This action requires the {' or '.join(roles)} role.")
            return func(*args, **kwargs)

        return inner

    return wrapper
