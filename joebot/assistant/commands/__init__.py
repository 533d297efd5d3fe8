"""Command handlers: one per recognised verb."""
