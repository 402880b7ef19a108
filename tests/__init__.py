"""Test suite for cmskit.

This package contains tests for:
- Validation evaluator (rule order, messages, edge cases)
- Status state machine and form session (loading, editing, submitting, teardown)
- Event system (emission, listener isolation)
- HTTP client against a local aiohttp server
- Rendering, form view, configuration and CLI
"""
