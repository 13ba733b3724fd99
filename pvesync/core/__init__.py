"""Core runtime pieces: configuration, logging, polling, run wrapper."""
