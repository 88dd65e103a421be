"""Debounced summarization of the captured message queue."""
