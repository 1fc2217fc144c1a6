"""
HTTP boundary for the guestbook service.

Design intent:
- Keep routers thin: parse transport, call the submission service, map errors.
- Offer the flat JSON feed and the GraphQL surface over the same read API.
"""
