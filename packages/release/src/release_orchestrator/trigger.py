from __future__ import annotations

import fnmatch
import os
from dataclasses import dataclass
from typing import Mapping

from release_orchestrator.core import TriggerError

TAG_REF_PREFIX = "refs/tags/"
DEFAULT_TAG_PATTERN = "v*"


@dataclass(frozen=True, slots=True)
class TagPush:
    """
    A version-tag push, the only event that starts a release run.
    """

    tag: str
    ref: str

    @property
    def version(self) -> str:
        return self.tag

    @classmethod
    def from_ref(cls, ref: str, *, pattern: str = DEFAULT_TAG_PATTERN) -> "TagPush":
        """
        Accepts `refs/tags/v1.2.3` or a bare `v1.2.3`.

        Branch refs and tags not matching `pattern` are rejected.
        """
        raw = (ref or "").strip()
        if raw.startswith(TAG_REF_PREFIX):
            tag = raw[len(TAG_REF_PREFIX):]
        elif raw.startswith("refs/"):
            raise TriggerError(f"Not a tag ref: {raw!r}")
        else:
            tag = raw

        if not tag or any(c.isspace() for c in tag):
            raise TriggerError(f"Invalid tag: {tag!r}")
        if not fnmatch.fnmatchcase(tag, pattern):
            raise TriggerError(f"Tag {tag!r} does not match release pattern {pattern!r}")

        full_ref = raw if raw.startswith(TAG_REF_PREFIX) else f"{TAG_REF_PREFIX}{tag}"
        return cls(tag=tag, ref=full_ref)

    @classmethod
    def from_env(
        cls, env: Mapping[str, str] | None = None, *, pattern: str = DEFAULT_TAG_PATTERN
    ) -> "TagPush":
        env = os.environ if env is None else env
        ref = env.get("GITHUB_REF")
        if not ref:
            raise TriggerError("No tag given and GITHUB_REF is not set")
        return cls.from_ref(ref, pattern=pattern)
