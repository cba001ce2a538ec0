import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from src.rules.models import Rules

logger = logging.getLogger(__name__)

FENCE_OPEN = "```yaml"
FENCE_CLOSE = "```"


def extract_yaml(text: str) -> str:
    """
    Pull YAML out of a rules document.

    A markdown file may carry the rules in a ```yaml block; only the first
    such block is used. Plain YAML passes through untouched.
    """
    lines = text.splitlines()
    starts = [i for i, line in enumerate(lines) if line.strip().startswith(FENCE_OPEN)]
    if not starts:
        return text

    body = lines[starts[0] + 1 :]
    for end, line in enumerate(body):
        if line.strip().startswith(FENCE_CLOSE):
            body = body[:end]
            break
    return "\n".join(body)


def load_rules(path: Path) -> Rules:
    """
    Load and validate the rules file.

    Raises:
        FileNotFoundError: path does not exist
        ValueError: unparseable YAML or a schema violation
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Rules file not found at: {path}")

    try:
        data = yaml.safe_load(extract_yaml(path.read_text(encoding="utf-8")))
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML syntax in rules file: {e}") from e

    try:
        rules = Rules.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Rules validation failed:\n{e}") from e

    logger.debug("Loaded rules v%s from %s", rules.rules_version, path)
    return rules
