"""
PAIDEIA - Property-Based Testing Suite

Property-based testing using Hypothesis for clause graph invariants and
quiz fingerprint determinism.
"""
