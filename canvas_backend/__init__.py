"""
Schema Canvas Backend - editor session, schema generation and HTTP service.
"""
