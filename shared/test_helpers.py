"""
Test helper functions and factory methods for the AAD authentication service.
"""

import time
from dataclasses import dataclass
from typing import Dict, Any, Optional, List

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwk, jwt


@dataclass
class TestSigningKey:
    """RSA key pair published under a key id."""
    __test__ = False

    kid: str
    private_pem: str
    public_jwk: Dict[str, Any]

    def jwks(self) -> Dict[str, Any]:
        """Return a JWKS document containing only this key."""
        return {"keys": [self.public_jwk]}


def generate_signing_key(kid: str = "test-key-1") -> TestSigningKey:
    """Generate a fresh RSA-2048 key pair and its public JWK."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")

    public_jwk = jwk.construct(public_pem, algorithm="RS256").to_dict()
    public_jwk.update({"kid": kid, "use": "sig"})
    # AAD does not publish "alg" on its keys
    public_jwk.pop("alg", None)
    return TestSigningKey(kid=kid, private_pem=private_pem, public_jwk=public_jwk)


def create_id_token_claims(
    client_id: str = "client-id",
    tenant_id: str = "tenant-1",
    login_host: str = "https://login.microsoftonline.com",
    subject: str = "subject-1",
    object_id: Optional[str] = "oid-1",
    name: Optional[str] = "John Doe",
    preferred_username: Optional[str] = "john.doe@example.com",
    email: Optional[str] = "john.doe@example.com",
    expires_in: int = 3600,
    **extra: Any,
) -> Dict[str, Any]:
    """Create a claim set shaped like an AAD v2.0 ID token."""
    now = int(time.time())
    claims: Dict[str, Any] = {
        "iss": f"{login_host}/{tenant_id}/v2.0",
        "aud": client_id,
        "sub": subject,
        "tid": tenant_id,
        "iat": now - 10,
        "nbf": now - 10,
        "exp": now + expires_in,
        "ver": "2.0",
    }
    optional = {
        "oid": object_id,
        "name": name,
        "preferred_username": preferred_username,
        "email": email,
    }
    claims.update({key: value for key, value in optional.items() if value is not None})
    claims.update(extra)
    return claims


def create_id_token(
    signing_key: TestSigningKey,
    claims: Dict[str, Any],
    algorithm: str = "RS256",
    headers: Optional[Dict[str, Any]] = None,
) -> str:
    """Sign claims with the given key, tagging the header with its kid."""
    token_headers = {"kid": signing_key.kid}
    if headers:
        token_headers.update(headers)
    return jwt.encode(claims, signing_key.private_pem, algorithm=algorithm, headers=token_headers)


def create_token_response(id_token: Optional[str], access_token: str = "user-access-token",
                          **extra: Any) -> Dict[str, Any]:
    """Create a token endpoint JSON body."""
    body: Dict[str, Any] = {
        "token_type": "Bearer",
        "expires_in": 3599,
        "scope": "openid profile email",
        "access_token": access_token,
    }
    if id_token is not None:
        body["id_token"] = id_token
    body.update(extra)
    return body


def create_group(display_name: Optional[str], object_id: Optional[str] = None,
                 odata_type: str = "#microsoft.graph.group") -> Dict[str, Any]:
    """Create a directory object as returned by the membership endpoint."""
    return {
        "@odata.type": odata_type,
        "id": object_id or f"id-{display_name}",
        "displayName": display_name,
    }


def create_group_page(groups: List[Dict[str, Any]], next_link: Optional[str] = None) -> Dict[str, Any]:
    """Create one page of a directory membership response."""
    page: Dict[str, Any] = {
        "@odata.context": "https://graph.microsoft.com/v1.0/$metadata#directoryObjects(id,displayName)",
        "value": groups,
    }
    if next_link is not None:
        page["@odata.nextLink"] = next_link
    return page
