"""Core data models for cdediag."""

from enum import Enum

from pydantic import BaseModel, Field


class OutputFormat(str, Enum):
    """Rendering of cluster resource listings."""

    WIDE = "wide"
    YAML = "yaml"
    JSON = "json"


class SectionKind(str, Enum):
    """Kind of a report section."""

    LISTING = "listing"
    CLOUD = "cloud"
    INFO = "info"
    ERROR = "error"


class Section(BaseModel):
    """One labeled section of a collection report."""

    label: str
    kind: SectionKind
    body: str = ""

    class Config:
        """Pydantic config."""

        frozen = True


class LogsSummary(BaseModel):
    """Outcome of a logs run."""

    units: int = 0
    failures: int = 0
    written: list[str] = Field(default_factory=list)
    failed_units: list[str] = Field(default_factory=list)
