"""
Load-generation and synthetic-monitoring harness.

Drives simulated users through the voice-note web application (login,
education content, chunked voice-note upload, transcription) and turns
the resulting timing/outcome samples into percentile tables, failure
reports and a CI pass/fail exit code.

Key Concepts Demonstrated:
- Explicit, append-only metric sink shared by all virtual users
- Named scenario steps with checks, fail rates and retry policy
- Pure reduction of the raw sample stream into a report summary
- Threshold gating with a three-state exit code for CI
"""

from __future__ import annotations

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

__version__ = "0.1.0"
