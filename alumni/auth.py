"""
Bearer token authentication.

Tokens are issued by the auth service and signed with the shared SECRET_KEY.
This module only verifies them and loads the user. ``issue_token`` exists for
development and tests.
"""

from functools import wraps
from flask import request, current_app, g
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired

from alumni import db
from alumni.models import User
from alumni.errors import AuthenticationError, PermissionDenied

TOKEN_SALT = 'alumni-auth'


def _serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=TOKEN_SALT)


def issue_token(user) -> str:
    """Sign a bearer token for a user."""
    return _serializer().dumps({'user_id': user.id, 'role': user.role})


def _read_bearer_token():
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


def load_user_from_token(token: str):
    """Verify a token and return its active user, or raise AuthenticationError."""
    try:
        payload = _serializer().loads(token, max_age=current_app.config['AUTH_TOKEN_MAX_AGE'])
    except SignatureExpired:
        raise AuthenticationError('Session expired, please sign in again')
    except BadSignature:
        raise AuthenticationError('Invalid authentication token')

    user = db.session.get(User, payload.get('user_id'))
    if not user or not user.is_active:
        raise AuthenticationError('Invalid authentication token')
    return user


def get_current_user():
    """The authenticated user for this request, or None."""
    return g.get('current_user')


def token_required(f):
    """Decorator to require a valid bearer token."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _read_bearer_token()
        if not token:
            raise AuthenticationError('Authentication required')
        g.current_user = load_user_from_token(token)
        return f(*args, **kwargs)
    return decorated_function


def token_optional(f):
    """Decorator that loads the user when a token is sent, but doesn't require one."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _read_bearer_token()
        g.current_user = load_user_from_token(token) if token else None
        return f(*args, **kwargs)
    return decorated_function


def role_required(*roles):
    """Decorator to require one of the given roles. Implies token_required."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = get_current_user()
            if user.role not in roles:
                raise PermissionDenied()
            return f(*args, **kwargs)
        return token_required(decorated_function)
    return decorator


staff_required = role_required('admin', 'moderator')
admin_required = role_required('admin')
