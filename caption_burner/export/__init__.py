"""Burn-in export jobs: job store, media resolution, and the job manager."""
