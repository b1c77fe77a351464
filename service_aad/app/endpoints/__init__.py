"""
Endpoint resolution package.

Maps provider settings (cloud/region, tenant, multi-tenant flag) to the
authorization, token, JWKS and directory-API URLs. Pure functions only; no
network access happens here.
"""
