"""Durable in-memory message queue with an observable change stream."""
