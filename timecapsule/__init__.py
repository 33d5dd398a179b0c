"""
Backend package for the time capsule messaging API.

This package provides a FastAPI application for message and child profile
management, store abstractions, and the scheduler that delivers messages
once their delivery date has passed.
"""
