"""
Group membership package.

Paginated Microsoft Graph client used for group sync. Results are all or
nothing: the fetcher never hands back a partially paginated membership.
"""
