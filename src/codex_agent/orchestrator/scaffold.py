"""Example manifest and task files written by ``codex-agent init``."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

EXAMPLE_TASKS: dict[str, str] = {
    "tasks/task-1-auth.md": """\
# Add User Authentication

Implement user authentication with the following requirements:
- Add login and registration endpoints
- Use JWT tokens for authentication
- Add middleware to protect routes
- Include password hashing with bcrypt
""",
    "tasks/task-2-docs.md": """\
# Create API Documentation

Generate API documentation with the following requirements:
- Document all endpoints
- Include request/response examples
- Add authentication requirements
- Use OpenAPI/Swagger format
""",
}

EXAMPLE_MANIFEST = """\
tasks:
  - id: task-1
    file: tasks/task-1-auth.md
    description: Add user authentication

  - id: task-2
    file: tasks/task-2-docs.md
    description: Create API documentation
"""

MANIFEST_NAME = "tasks.yaml"


@dataclass(slots=True)
class ScaffoldResult:
    created: list[Path] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)


def write_examples(repo_root: Path) -> ScaffoldResult:
    """Create example files; never overwrites files the user already has."""

    result = ScaffoldResult()
    files = {**EXAMPLE_TASKS, MANIFEST_NAME: EXAMPLE_MANIFEST}
    for relative, content in files.items():
        path = repo_root / relative
        if path.exists():
            result.skipped.append(path)
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, "utf-8")
        result.created.append(path)
    return result
