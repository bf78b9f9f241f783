"""
Jinja2 rendering for planner prompts.

Every Template member must have a file on disk; a missing one fails the
import rather than the first planning call. Undefined variables raise.
"""

from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from ...domain.models import AgentRole
from .templates import Template

TEMPLATES_DIR = Path(__file__).parent / "templates"

_missing = [t.filename for t in Template if not (TEMPLATES_DIR / t.filename).exists()]
if _missing:
    raise FileNotFoundError(f"Prompt templates missing from {TEMPLATES_DIR}: {', '.join(_missing)}")


@lru_cache(maxsize=1)
def _environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(TEMPLATES_DIR),
        autoescape=False,
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=False,
    )
    env.globals["agent_roles"] = [role.value for role in AgentRole]
    return env


def render(template: Template, **context) -> str:
    """
    Render a prompt template.

    Args:
        template: Which prompt to render
        **context: Template variables; every variable the template reads is required

    Returns:
        The prompt text
    """
    return _environment().get_template(Template(template).filename).render(**context)
