"""
Pure settlement rules: sale calculation, payment allocation, the shift and
handover state machines and the settlement aggregation. No database access.
"""
