"""Desynth Settlement Package — booking fee pricing and crypto-escrow settlement.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)

Design Decisions:
    - Empty __init__.py: explicit imports only, no star exports
"""
