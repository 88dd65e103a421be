"""Capture pipeline: event normalization, deduplication and queueing.

Turns notification and accessibility events from the messaging app into
deduplicated Messages on the MessageQueue.
"""
