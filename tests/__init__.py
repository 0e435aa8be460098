"""
Test suite for the Command Center.

Demonstrates testing patterns for the orchestration engine:
- Domain logic tests (state machine, registries, guardrails, memory)
- Scripted backends instead of real providers
- Integration tests for the HTTP surface, in-process
"""
