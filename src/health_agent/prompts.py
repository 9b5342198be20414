"""Versioned prompt templates for the health assistant."""

import hashlib
from dataclasses import asdict, dataclass
from functools import lru_cache
from pathlib import Path
from string import Formatter


@dataclass(frozen=True)
class PromptSpec:
    """Prompt specification with immutable version contract."""

    prompt_id: str
    version: str
    filename: str
    required_placeholders: tuple[str, ...]


@dataclass(frozen=True)
class PromptTemplate:
    """Loaded prompt template with digest."""

    prompt_id: str
    version: str
    text: str
    sha256: str

    @property
    def short_hash(self) -> str:
        """Return a short hash for compact log usage."""
        return self.sha256[:12]


@dataclass(frozen=True)
class PromptProvenance:
    """Version metadata of the prompts behind a completion request."""

    prompt_id: str
    prompt_version: str
    prompt_hash: str
    persona_hash: str

    def to_log_context(self) -> dict[str, str]:
        return asdict(self)


PROMPT_SPECS: dict[str, PromptSpec] = {
    "system_persona": PromptSpec(
        prompt_id="system_persona",
        version="v1",
        filename="system_persona_v1.md",
        required_placeholders=(),
    ),
    "user_question": PromptSpec(
        prompt_id="user_question",
        version="v1",
        filename="user_question_v1.md",
        required_placeholders=("health_data", "question"),
    ),
}

_PROMPTS_DIR = Path(__file__).parent / "templates"
_FORMATTER = Formatter()


def text_digest(text: str) -> str:
    """Return the sha256 hex digest of prompt text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _validate_placeholders(prompt_text: str, required: tuple[str, ...]) -> None:
    found = {
        field_name
        for _, field_name, _, _ in _FORMATTER.parse(prompt_text)
        if field_name is not None
    }
    missing = [name for name in required if name not in found]
    if missing:
        msg = ", ".join(missing)
        raise ValueError(f"Prompt missing required placeholders: {msg}")


@lru_cache(maxsize=16)
def load_prompt_template(prompt_id: str) -> PromptTemplate:
    """Load prompt template from versioned file and validate placeholders."""
    spec = PROMPT_SPECS[prompt_id]
    path = _PROMPTS_DIR / spec.filename
    text = path.read_text(encoding="utf-8").strip()
    _validate_placeholders(text, spec.required_placeholders)
    digest = text_digest(text)
    return PromptTemplate(
        prompt_id=spec.prompt_id,
        version=spec.version,
        text=text,
        sha256=digest,
    )


def prompt_provenance(system_prompt: str) -> PromptProvenance:
    """Describe the user question template and the persona in use."""
    template = load_prompt_template("user_question")
    return PromptProvenance(
        prompt_id=template.prompt_id,
        prompt_version=template.version,
        prompt_hash=template.short_hash,
        persona_hash=text_digest(system_prompt)[:12],
    )


def build_user_prompt(health_data: str, question: str) -> str:
    """Combine the serialized health summary and the question into one prompt."""
    template = load_prompt_template("user_question")
    return template.text.format(health_data=health_data, question=question)
