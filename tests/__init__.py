"""
Test suite for Agent Flow.
"""
