import hmac
from functools import wraps
from typing import Any, Callable, Optional, Protocol

from flask import current_app, request

HEADER : str = 'Authorization'


class AuthError(Exception):
    def __init__(self, message: str, status: int) -> None:
        super().__init__(message)
        self.status = status


class KeyVerifier(Protocol):
    def verify(self, credential: str) -> bool: ...


class StaticKeyVerifier:
    '''Accepts exactly one shared key.'''

    def __init__(self, key: str) -> None:
        if not key:
            raise ValueError('API key must not be empty')
        self._key = key

    def verify(self, credential: str) -> bool:
        return hmac.compare_digest(credential.encode(), self._key.encode())


def require_api_key(view: Callable[..., Any]) -> Callable[..., Any]:
    '''Reject the request before ``view`` runs unless the key header matches.

    A missing or blank header is a bad request (400); a header that does not
    match is not acceptable (406).
    '''
    @wraps(view)
    def gated(*args: Any, **kwargs: Any) -> Any:
        credential : Optional[str] = request.headers.get(HEADER)
        if credential is None or not credential.strip():
            raise AuthError(f'missing {HEADER} header', 400)
        if not current_app.extensions['api_key_verifier'].verify(credential):
            raise AuthError('invalid API key', 406)
        return view(*args, **kwargs)

    return gated
