from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class AuthContext:
    """Credentials for one storefront user, passed explicitly to every REST adapter.

    Set when a checkout session starts, read by every authenticated request, and cleared
    when the storefront answers 401/403.
    """

    token: str | None = None
    role: str | None = None

    @classmethod
    def from_authorization_header(cls, header: str | None) -> "AuthContext":
        if not header:
            return cls()
        scheme, _, token = header.strip().partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return cls()
        return cls(token=token.strip())

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    def headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def clear(self) -> None:
        self.token = None
        self.role = None
