"""
Integration tests for the load harness.

These tests start the stub backend on a free local port and drive the
HTTP workload through it with real requests sessions, demonstrating:
- Injected failure ratios measured end to end
- The threshold gate and report files of a complete run
"""
