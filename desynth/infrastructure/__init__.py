"""Infrastructure Layer — database sessions, blockchain RPC, rate limiting, notifications.

Invariants:
    - Implements the Protocols declared in core/boundary_protocols.py
    - Every external call is bounded by a timeout and mapped to a typed result or error

Design Decisions:
    - Adapters depend on core types, never the reverse
"""
