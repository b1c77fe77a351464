"""
Token exchange package.

Talks to the authority's token endpoint for the authorization-code grant
(user sign-in) and the client-credentials grant (application token for
directory queries).
"""
