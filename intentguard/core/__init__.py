"""IntentGuard core assessment components.

This package contains the heuristic pre-scan and its detectors, channel
context resolution, file triage and retrieval, document text extraction,
prompt construction, the classification service client and the risk engine
that orchestrates them.
"""
