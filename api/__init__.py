"""
HTTP API for the transcript pipeline
"""
