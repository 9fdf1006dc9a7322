"""
cert_tracker — TLS certificate ingestion and expiry tracking.

Parses uploaded certificate files (PEM, bare base64 or DER) into normalized
records, keeps them in PostgreSQL and periodically checks how close each
one is to expiry.

Built on the Railway-Oriented Programming (ROP) framework for
explicit, composable, functional error handling.
"""

__version__ = "0.1.0"
