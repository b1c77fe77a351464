"""
JWKS client package.

Contains logic for retrieving and caching the JSON Web Key Set used to
verify ID token signatures.

Key points:
- Fetches are bounded by a timeout and never retried here.
- One client (and cache) per JWKS URL, shared across requests.
- A kid miss forces a single refresh to pick up rotated keys.
"""
