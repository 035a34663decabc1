"""
Pure domain layer: enums, DTOs, clock, and the trip workflow.

ZERO I/O.  Nothing here imports from db/, services/, or selectors/.
"""
