"""
Core module - configuration, logging and the error taxonomy.
"""
