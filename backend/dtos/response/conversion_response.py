"""
Conversion Response DTOs

DTOs for the convert and download API responses.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ConversionResponse(BaseModel):
    """
    Response DTO for a successful conversion.

    The url points at GET /download/{id} and stays valid for
    expires_in_seconds after the conversion finished.
    """

    url: str = Field(description="Absolute download URL")
    id: str = Field(description="Download id")
    expires_in_seconds: int = Field(description="Seconds until the download expires")


class ErrorResponse(BaseModel):
    """Response DTO for every classified failure"""

    error: str = Field(description="Error classification")
    message: Optional[str] = Field(None, description="Human-readable message")
    code: Optional[int] = Field(None, description="Encoder exit code, when it exited")
    signal: Optional[str] = Field(None, description="Signal that killed the encoder")
    stderr: Optional[str] = Field(None, description="Tail of the encoder diagnostics")
