"""
Guestbook backend package.

Design intent:
- Accept public text/voice submissions and keep storage the single source of truth.
- Serve operator reads through one service API, whatever the wire format.
"""
