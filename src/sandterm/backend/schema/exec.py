"""Non-streaming command execution schemas"""

from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


# ==================== Request Schemas ====================


class ExecRequest(BaseModel):
    """Request schema for running one command to completion

    Field names are camelCase on the wire (workDir, timeoutSeconds).
    """
    model_config = ConfigDict(populate_by_name=True)

    command: str = Field(..., description="Shell command to run")
    work_dir: Optional[str] = Field(
        default=None,
        alias="workDir",
        description="Working directory inside the sandbox"
    )
    env: Optional[Dict[str, str]] = Field(
        default=None,
        description="Extra environment variables"
    )
    timeout_seconds: Optional[int] = Field(
        default=None,
        alias="timeoutSeconds",
        ge=1,
        description="Give up after this many seconds (no limit when omitted)"
    )

    @field_validator('command')
    @classmethod
    def validate_command(cls, value: str) -> str:
        """Reject blank commands"""
        if not value.strip():
            raise ValueError("Command must not be blank")
        return value


# ==================== Response Schemas ====================


class ExecResponse(BaseModel):
    """Response schema for a finished command"""
    model_config = ConfigDict(populate_by_name=True)

    exit_code: int = Field(..., alias="exitCode")
    stdout: List[str] = Field(default_factory=list)
    stderr: List[str] = Field(default_factory=list)
    execution_time_ms: int = Field(0, alias="executionTimeMs")
    success: bool
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """Liveness of the backend itself (not of any sandbox)"""
    status: str = "ok"
