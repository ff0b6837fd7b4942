"""Indexing pipeline - cursors, scanners, aggregation and realtime fan-out."""
