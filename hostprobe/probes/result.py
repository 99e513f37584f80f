"""Result model produced by probe functions."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class Result(BaseModel):
    """Outcome of a single successful probe run.

    A Result is created by the probe function and never mutated afterwards.
    Key order in ``data`` carries no meaning; encoders impose their own.
    """

    name: str = Field(..., description="Probe name the result belongs to")
    summary: str = Field(default="", description="Optional free-text summary")
    data: Dict[str, str] = Field(
        default_factory=dict, description="Flat key/value facts reported by the probe"
    )

    model_config = {"frozen": True}

    def as_payload(self) -> Dict[str, Any]:
        """Return a plain dict with ``data`` keys in sorted order."""
        return {
            "name": self.name,
            "summary": self.summary,
            "data": {k: self.data[k] for k in sorted(self.data)},
        }


def new_result(
    name: str, summary: str = "", data: Optional[Dict[str, Any]] = None
) -> Result:
    """Build a Result, stringifying every data value."""
    values = {str(k): "" if v is None else str(v) for k, v in (data or {}).items()}
    return Result(name=name, summary=summary, data=values)
