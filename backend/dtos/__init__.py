"""
Data Transfer Objects (DTOs) Layer

This package contains the pydantic models that define the public JSON contract
of the API, independent of the internal service types.

Structure:
- response/: DTOs for outgoing API responses
"""
