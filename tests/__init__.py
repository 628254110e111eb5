"""
Test suite for the load harness.

This package contains:
- unit/: Fast tests of the engine, scenarios and stub with fakes
- integration/: Real HTTP runs against the stub backend in a thread
- fakes.py: Stand-ins for the HTTP transport and the Playwright browser
"""
