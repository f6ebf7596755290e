"""
Property tests for the ledger.

Hypothesis defaults: fewer examples locally, deeper runs in CI
(HYPOTHESIS_PROFILE=ci or CI set).
"""
from __future__ import annotations

import os

from hypothesis import settings

settings.register_profile("local", settings(max_examples=60, deadline=None))
settings.register_profile("ci", settings(max_examples=300, deadline=None))
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE") or ("ci" if os.environ.get("CI") else "local"))
