from __future__ import annotations
import os

SOURCE_DIR_ENV = "MLC_LLM_SOURCE_DIR"
CONTAINER_SOURCE_DIR = "/workspace"

INSTALL_PREFIX = os.environ.get("INSTALL_PREFIX", "/usr/local")
REGISTRY = os.environ.get("MLCPIPE_REGISTRY", "ghcr.io")
IMAGE_NAME = os.environ.get("MLCPIPE_IMAGE_NAME", "afzaal0007/mlc-llm-pipeline")
DEFAULT_BRANCH = os.environ.get("MLCPIPE_DEFAULT_BRANCH", "main")

SMOKE_TIMEOUT = int(os.environ.get("MLCPIPE_SMOKE_TIMEOUT", "60"))


def source_dir(default: str | None = None) -> str:
    """Source directory: $MLC_LLM_SOURCE_DIR, else `default`, else cwd."""
    return os.environ.get(SOURCE_DIR_ENV) or default or os.getcwd()


def python_path(source: str, current: str | None = None) -> str:
    """Module search path with <source>/python prepended."""
    head = os.path.join(source, "python")
    if current is None:
        current = os.environ.get("PYTHONPATH", "")
    return f"{head}{os.pathsep}{current}" if current else head


def source_env(source: str, base: dict[str, str] | None = None) -> dict[str, str]:
    """Environment with the source dir and derived PYTHONPATH exported."""
    env = dict(os.environ if base is None else base)
    env[SOURCE_DIR_ENV] = source
    env["PYTHONPATH"] = python_path(source, env.get("PYTHONPATH", ""))
    return env
