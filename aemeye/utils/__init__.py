"""Helpers for turning operator input into probe targets."""
