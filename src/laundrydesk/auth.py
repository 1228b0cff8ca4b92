from __future__ import annotations

from dataclasses import dataclass

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

from .domain import ROLES, Principal, User
from .errors import AuthenticationError


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(user: User, password: str) -> bool:
    return check_password_hash(user.password_hash, password)


@dataclass(frozen=True)
class TokenSigner:
    secret_key: str
    max_age_seconds: int
    salt: str = "laundrydesk-auth"

    def _serializer(self) -> URLSafeTimedSerializer:
        return URLSafeTimedSerializer(self.secret_key, salt=self.salt)

    def issue(self, user: User | Principal) -> str:
        return self._serializer().dumps({"id": user.id, "username": user.username, "role": user.role})

    def load(self, token: str) -> Principal:
        try:
            data = self._serializer().loads(token, max_age=self.max_age_seconds)
        except SignatureExpired:
            raise AuthenticationError("Token expired") from None
        except BadSignature:
            raise AuthenticationError("Invalid token") from None

        if not isinstance(data, dict) or data.get("role") not in ROLES:
            raise AuthenticationError("Invalid token")
        try:
            return Principal(id=int(data["id"]), username=str(data["username"]), role=data["role"])
        except (KeyError, TypeError, ValueError):
            raise AuthenticationError("Invalid token") from None


def bearer_token(header: str | None) -> str:
    if not header:
        raise AuthenticationError("Token missing")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Token missing")
    return token.strip()
