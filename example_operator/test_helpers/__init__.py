"""
Shared helpers for testing the operator
"""
