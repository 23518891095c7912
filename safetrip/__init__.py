"""safetrip: personal-safety trip tracking service."""
