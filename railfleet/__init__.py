"""Railcar fleet lifecycle and assignment state machine."""
