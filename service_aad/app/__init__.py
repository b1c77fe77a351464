"""
Azure AD identity provider package.

This package signs users in against Azure Active Directory (Microsoft
identity platform v2.0) and hands a canonical identity to the host:

- app.flow: Authorization redirect and callback state machine.
- app.endpoints: Per-cloud authority and directory API URLs.
- app.exchange: Token endpoint client (code and client-credentials grants).
- app.validation: ID token verification (JWKS, claims).
- app.jwks: JWKS client helpers for fetching and caching signing keys.
- app.groups: Paginated directory group membership.
- app.identity: Login strategies and identity assembly.
- app.main: Reference FastAPI host.

Design notes:
- Module import must not perform network calls. All IO happens in the
  flow's async callback or in route handlers.
- Use the shared/ utilities for logging, metrics, configuration and errors.
- The provider keeps no per-user state between init and callback.
"""
