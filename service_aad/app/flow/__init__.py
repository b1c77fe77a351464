"""
Sign-in flow package.

- controller: AadIdentityProvider, the init/callback state machine.
- context: protocols the host implements for redirects, CSRF state and
  session creation.
"""
