from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from photo_catalog.core.config import ConfigProvider

logger = logging.getLogger(__name__)

AI_TAGGER_NAME = "AI_TAGGER"
DEFAULT_TIMEOUT_SECONDS = 30


class TaggerError(RuntimeError):
    """Raised when the tagging tool fails or times out."""


def parse_tag_output(output: str) -> list[str]:
    """Comma-separated tags first, newline-separated as the fallback."""
    text = (output or "").strip()
    if not text:
        return []
    tags: list[str] = []
    if "," in text:
        for part in text.split(","):
            tag = part.strip()
            if tag and "\n" not in tag:
                tags.append(tag)
    if not tags:
        tags = [line.strip() for line in text.splitlines() if line.strip()]
    return tags


@dataclass
class AiTagger:
    """Runs an external tagging script against one image and returns its labels."""

    executable: str = "python3"
    script_path: str = "./stag-main/stag.py"
    timeout: float = DEFAULT_TIMEOUT_SECONDS

    @classmethod
    def from_config(cls, config: ConfigProvider) -> "AiTagger":
        return cls(
            executable=config.get_property("tagger.python.executable", "python3"),
            script_path=config.get_property("tagger.script.path", "./stag-main/stag.py"),
            timeout=config.get_int("tagger.timeout.seconds", DEFAULT_TIMEOUT_SECONDS),
        )

    def generate_tags(self, image_path: str | Path) -> list[str]:
        image = Path(image_path)
        if not image.is_file():
            logger.warning("Tagger: image does not exist: %s", image)
            return []
        script = Path(self.script_path)
        if not script.is_file():
            logger.warning("Tagger: script not found at %s (no tags generated)", script)
            return []

        cmd = [self.executable, str(script.resolve()), str(image.resolve())]
        logger.debug("Tagger: running %s", cmd)
        try:
            result = subprocess.run(
                cmd,
                cwd=str(script.resolve().parent),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise TaggerError(
                f"Tagger timed out after {self.timeout:g} seconds for {image.name}"
            ) from exc
        except OSError as exc:
            raise TaggerError(f"Tagger could not be started: {exc}") from exc

        output = result.stdout or ""
        if result.returncode != 0:
            raise TaggerError(
                f"Tagger exited with code {result.returncode}: {output.strip()[:2000]}"
            )
        tags = parse_tag_output(output)
        logger.debug("Tagger: %d tag(s) for %s", len(tags), image.name)
        return tags
