"""
Services module - request handling behind each endpoint family.

Services return (status_code, envelope) pairs; the routes only render them.
"""

from app.services import client_ip, connections, external_db, proxy, store

__all__ = ["client_ip", "connections", "external_db", "proxy", "store"]
