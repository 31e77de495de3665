"""Callout-Foundry Test Suite.

Test organization:
- unit/: transport, resilience, dispatch, logging and configuration tests.
  Everything runs offline against MockTransport, httpx.MockTransport and
  ManualScheduler.
"""
