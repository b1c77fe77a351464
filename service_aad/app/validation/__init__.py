"""
Token validation package.

Validates ID tokens issued by Azure AD:

- Signature: RS256 only, key selected by kid from the tenant JWKS.
- Claims: audience, tenant-scoped issuer, iat/nbf/exp window and the
  required claim set.

A token is trusted only when every check passes; claims are exposed as a
ClaimsSet after that point and never before.
"""
