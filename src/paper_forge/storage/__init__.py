"""Durable artifact storage."""
