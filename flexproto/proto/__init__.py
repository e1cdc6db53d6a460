"""Flexproto Python runtime."""
