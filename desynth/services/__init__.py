"""Services Layer — booking lifecycle, escrow coordination, dispute arbitration.

Invariants:
    - Every status change is a compare-and-swap UPDATE; multi-row changes share
      one transaction (db/session.atomic)
    - Action dispatch uses an explicit dict mapping (no auto-discovery)

Design Decisions:
    - Pure decisions (transitions, pricing, access) live in core/; services only
      sequence IO around them
"""
