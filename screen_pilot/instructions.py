"""Prompt templates for the acting, evaluating and repairing models.

Templates ship as markdown under ``screen_pilot/prompts``. A directory of
same-named files (``agent.prompts_dir``) can replace any of them, but an
override may only use the placeholders its caller fills in.
"""

import string
from importlib import resources
from pathlib import Path

from screen_pilot.exceptions import ConfigurationError
from screen_pilot.logging import get_logger

log = get_logger(__name__)

# Placeholders each caller supplies when rendering
PROMPT_FIELDS: dict[str, frozenset[str]] = {
    "system_prompt.md": frozenset({"width", "height"}),
    "completion_evaluation.md": frozenset(
        {"instructions", "completion_summary", "verification_evidence", "final_state_description"}
    ),
    "completion_finalize.md": frozenset(
        {"completion_summary", "verification_evidence", "final_state_description"}
    ),
    "argument_repair.md": frozenset({"tool_name", "arguments", "error", "schema"}),
}


def template_fields(template: str) -> set[str]:
    """Names of the ``{placeholder}`` fields used in ``template``."""
    return {field for _, field, _, _ in string.Formatter().parse(template) if field}


class InstructionLoader:
    """Load, check and render prompt templates."""

    def __init__(self, override_dir: Path | str | None = None):
        self.override_dir = Path(override_dir).expanduser() if override_dir else None
        self._templates: dict[str, str] = {}

    def _read(self, name: str) -> str:
        if self.override_dir is not None:
            override = self.override_dir / name
            if override.is_file():
                log.debug("Using prompt override", template=name, path=str(override))
                return override.read_text(encoding="utf-8")
        packaged = resources.files("screen_pilot") / "prompts" / name
        if not packaged.is_file():
            raise ConfigurationError(f"Unknown prompt template: {name}")
        return packaged.read_text(encoding="utf-8")

    def load(self, name: str) -> str:
        """Return the template text, checking it only uses known placeholders.

        Raises:
            ConfigurationError if the template is missing or uses an unknown placeholder
        """
        if name in self._templates:
            return self._templates[name]

        template = self._read(name).strip()
        allowed = PROMPT_FIELDS.get(name)
        if allowed is not None:
            unknown = template_fields(template) - allowed
            if unknown:
                raise ConfigurationError(
                    f"Prompt template {name} uses unknown placeholders: {', '.join(sorted(unknown))}"
                )
        self._templates[name] = template
        return template

    def render(self, name: str, **variables: object) -> str:
        """Fill the template's placeholders from ``variables``.

        Raises:
            ConfigurationError if a placeholder has no value
        """
        template = self.load(name)
        missing = template_fields(template) - variables.keys()
        if missing:
            raise ConfigurationError(
                f"Missing values for prompt template {name}: {', '.join(sorted(missing))}"
            )
        return template.format(**{key: str(value) for key, value in variables.items()})
