"""Project initialization: config file, env template, .gitignore entries."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from shortest.models.config import CONFIG_FILENAME, ShortestConfig

logger = logging.getLogger(__name__)

GITIGNORE_ENTRIES = [".env*.local", ".shortest/"]

ENV_TEMPLATE = """# Shortest Environment Variables
ANTHROPIC_API_KEY=

# Optional Configuration
# GITHUB_TOTP_SECRET=
# GITHUB_USERNAME=
# GITHUB_PASSWORD=
"""

EXAMPLE_TEST = """{
  "name": "Homepage loads",
  "steps": [
    "Open the home page and verify the main heading is visible"
  ]
}
"""


@dataclass
class GitIgnoreResult:
    was_created: bool = False
    was_updated: bool = False
    error: Optional[Exception] = None


def add_to_gitignore(root: Path, values: list[str]) -> GitIgnoreResult:
    """Append missing lines to ``root/.gitignore``, keeping its line endings."""
    result = GitIgnoreResult()
    path = root / ".gitignore"
    try:
        is_new = not path.exists()
        content = "" if is_new else path.read_bytes().decode("utf-8")
        eol = "\r\n" if "\r\n" in content else os.linesep

        modified = False
        for value in values:
            if value in content.split(eol):
                continue
            separator = "" if content.endswith(eol) or not content else eol
            content = f"{content}{separator}{value}{eol}"
            modified = True

        if modified:
            path.write_bytes(content.encode("utf-8"))
            result.was_created = is_new
            result.was_updated = not is_new
    except OSError as e:
        result.error = e
    return result


def init_project(root: Path, target_url: Optional[str] = None) -> list[str]:
    """Scaffold a project for running tests. Returns human-readable actions taken."""
    done = []

    config_path = root / CONFIG_FILENAME
    if not config_path.exists():
        config = ShortestConfig(base_url=target_url) if target_url else ShortestConfig()
        config.save(config_path)
        done.append(f"{CONFIG_FILENAME} created")
    else:
        done.append(f"{CONFIG_FILENAME} already exists, left unchanged")

    env_path = root / ".env.local"
    if not env_path.exists():
        env_path.write_text(ENV_TEMPLATE)
        done.append("Environment file created")
    elif "ANTHROPIC_API_KEY" not in env_path.read_text():
        with open(env_path, "a") as f:
            f.write("\n" + ENV_TEMPLATE)
        done.append("Environment file updated")

    example = root / "example.test.json"
    if not any(root.glob("**/*.test.json")):
        example.write_text(EXAMPLE_TEST)
        done.append(f"{example.name} created")

    result = add_to_gitignore(root, GITIGNORE_ENTRIES)
    if result.error:
        logger.error("Failed to update .gitignore: %s", result.error)
    elif result.was_created or result.was_updated:
        done.append(f".gitignore {'created' if result.was_created else 'updated'}")
    return done
