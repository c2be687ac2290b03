"""
Backend adapters implementing the IdentityProvider and RemoteStore ports.

- rest.py: hosted REST backend over httpx
- memory.py: offline in-memory backend for demos
"""
