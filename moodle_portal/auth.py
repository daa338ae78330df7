import jwt
import os
import uuid
import logging
from functools import wraps
from pyramid.httpexceptions import HTTPFound
from datetime import datetime, timedelta, timezone

log = logging.getLogger(__name__)

COOKIE_NAME = 'portal_client'


class AuthService:
    """
    Issues the signed cookie that ties a browser to its stored session.

    The token carries only a random client id; who is signed in lives in the
    SessionStore under that id.
    """

    @staticmethod
    def _secret(settings=None):
        settings = settings or {}
        return (os.getenv('PORTAL_JWT_SECRET')
                or settings.get('portal.jwt_secret')
                or 'default-secret-key')

    @staticmethod
    def generate_token(client_id, settings=None, hours=24):
        payload = {
            'sid': client_id,
            'exp': datetime.now(timezone.utc) + timedelta(hours=hours),
            'iat': datetime.now(timezone.utc)
        }
        return jwt.encode(payload, AuthService._secret(settings), algorithm='HS256')

    @staticmethod
    def decode_token(token, settings=None):
        """Return the client id in token, or None if it is invalid or expired"""
        try:
            payload = jwt.decode(token, AuthService._secret(settings), algorithms=['HS256'])
            return payload.get('sid')
        except jwt.ExpiredSignatureError:
            log.info("Portal client token expired")
            return None
        except jwt.InvalidTokenError:
            return None

    @staticmethod
    def new_client_id():
        return uuid.uuid4().hex


def get_client_id(request):
    """
    Client id for this browser, minting a fresh one (and its cookie) if needed
    """
    settings = request.registry.settings
    token = request.cookies.get(COOKIE_NAME)
    client_id = AuthService.decode_token(token, settings) if token else None
    if client_id:
        return client_id

    client_id = AuthService.new_client_id()
    new_token = AuthService.generate_token(client_id, settings)

    def set_cookie(request, response):
        response.set_cookie(COOKIE_NAME, new_token, httponly=True, samesite='Lax',
                            max_age=24 * 60 * 60)
    request.add_response_callback(set_cookie)
    return client_id


def require_session(view):
    """Decorator sending anonymous visitors to the login page"""
    @wraps(view)
    def wrapper(request):
        if not request.portal.is_authenticated:
            return HTTPFound(location=request.route_url('login'))
        return view(request)
    return wrapper
