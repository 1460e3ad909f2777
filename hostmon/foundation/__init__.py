"""Shared configuration and instrumentation helpers."""
