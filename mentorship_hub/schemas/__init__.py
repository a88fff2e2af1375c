"""
Schemas module - records, query state and API payloads.
"""
