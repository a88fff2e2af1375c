"""
Utils module - small display helpers shared by services and routes.
"""
