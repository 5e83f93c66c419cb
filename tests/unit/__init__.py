"""
Unit tests for Agent Flow components.
"""
