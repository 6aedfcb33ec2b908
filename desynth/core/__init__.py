"""Core Layer — pure domain logic: pricing, transitions, validation, access.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - Functions are deterministic; IO is reached only through boundary_protocols

Design Decisions:
    - Functional core separated from imperative shell
"""
