"""Capture loop core: session, scheduling, rescaling and overlay drawing."""
