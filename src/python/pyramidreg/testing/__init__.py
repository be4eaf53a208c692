"""Synthetic data helpers for tests and demos."""
