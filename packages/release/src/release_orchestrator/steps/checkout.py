from __future__ import annotations

from pathlib import Path

from release_orchestrator.core import CheckoutError


def verify_source_tree(source_dir: Path, *, manifest: str = "Cargo.toml") -> Path:
    """
    Ensure the checked-out source tree is present before anything builds
    from it. Returns the resolved directory.
    """
    root = Path(source_dir).expanduser()
    if not root.is_dir():
        raise CheckoutError(f"Source tree is not materialized: {root}")
    if not (root / manifest).is_file():
        raise CheckoutError(f"Source tree has no {manifest}: {root}")
    return root.resolve()
