from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

import jwt

from src.unicore.errors import AuthError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerifiedIdentity:
    """Result of a successful credential check."""

    subject_id: str
    email: Optional[str] = None
    claims: Dict[str, Any] = field(default_factory=dict)


class IdentityVerifier:
    """
    Verifies bearer credentials issued by the external identity provider.

    Credentials are JWTs. Two key sources are supported:
    - a shared secret (HS256), used for local development and tests;
    - a JWKS endpoint (RS256), e.g. the Google secure-token keys behind Firebase ID tokens.

    `exp` and `sub` are required; audience and issuer are checked when configured.
    Every failure is reported as AuthError so callers cannot tell the reasons apart.
    """

    def __init__(
        self,
        *,
        secret: Optional[str] = None,
        jwks_url: Optional[str] = None,
        algorithms: Optional[Sequence[str]] = None,
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
        leeway_seconds: int = 0,
    ):
        if not secret and not jwks_url:
            raise ValueError("IdentityVerifier needs a secret or a JWKS url")
        self._secret = secret
        self._jwks_client = jwt.PyJWKClient(jwks_url) if jwks_url and not secret else None
        self._algorithms = list(algorithms or (["HS256"] if secret else ["RS256"]))
        self._audience = audience
        self._issuer = issuer
        self._leeway = max(0, int(leeway_seconds))

    def _signing_key(self, token: str) -> Any:
        if self._jwks_client is not None:
            return self._jwks_client.get_signing_key_from_jwt(token).key
        return self._secret

    # PUBLIC_INTERFACE
    def verify(self, token: str) -> VerifiedIdentity:
        """Verify a credential and return the stable subject id plus its email claim, if any."""
        if not token or not token.strip():
            raise AuthError()

        try:
            payload = jwt.decode(
                token.strip(),
                self._signing_key(token.strip()),
                algorithms=self._algorithms,
                audience=self._audience,
                issuer=self._issuer,
                leeway=self._leeway,
                options={
                    "require": ["exp", "sub"],
                    "verify_aud": self._audience is not None,
                },
            )
        except jwt.ExpiredSignatureError:
            logger.warning("Rejected credential: token has expired")
            raise AuthError() from None
        except jwt.PyJWTError as e:
            logger.warning("Rejected credential: %s", type(e).__name__)
            raise AuthError() from None

        subject_id = str(payload.get("sub") or "").strip()
        if not subject_id:
            logger.warning("Rejected credential: empty subject")
            raise AuthError()

        email = payload.get("email")
        return VerifiedIdentity(subject_id=subject_id, email=str(email) if email else None, claims=dict(payload))
