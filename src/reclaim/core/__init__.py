"""Sampling, execution and orchestration."""
