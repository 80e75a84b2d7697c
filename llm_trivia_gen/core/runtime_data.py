from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class RuntimePaths:
    root: Path
    logs_dir: Path
    log_path: Path


def build_runtime_paths(root: Path) -> RuntimePaths:
    logs_dir = root / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    return RuntimePaths(root=root, logs_dir=logs_dir, log_path=logs_dir / "trivia-gen.log")


def get_runtime_paths() -> RuntimePaths:
    env_path = os.environ.get("TRIVIA_GEN_RUNTIME_DIR", "").strip()
    if env_path:
        root = Path(env_path)
    else:
        root = Path(__file__).resolve().parents[2] / "runtime-data"

    return build_runtime_paths(root)
