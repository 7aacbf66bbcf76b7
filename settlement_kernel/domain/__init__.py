"""
settlement_kernel.domain -- Pure types, value objects and transition tables.

ZERO I/O.  All DTOs are frozen dataclasses.
"""
