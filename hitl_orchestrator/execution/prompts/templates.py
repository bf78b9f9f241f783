"""
Prompt templates shipped with the package.
"""

from enum import Enum


class Template(str, Enum):
    """One member per .jinja2 file under templates/."""

    PLAN_GENERATION = "plan_generation"

    @property
    def filename(self) -> str:
        return f"{self.value}.jinja2"
