"""
Clients module - collaborator contracts and the remote API client.
"""
