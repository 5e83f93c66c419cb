"""
Integration tests for the Agent Flow orchestrator.
"""
