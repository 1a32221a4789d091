"""Platform-specific utilities for cross-platform compatibility."""

import platform
import shutil
import subprocess

from .logger import get_logger

logger = get_logger(__name__)


def get_platform() -> str:
    system = platform.system()
    if system == "Darwin":
        return "macos"
    return system.lower()


def detect_nvidia_gpu() -> bool:
    """Checks for NVIDIA GPU availability via nvidia-smi."""
    if shutil.which("nvidia-smi") is None:
        return False
    try:
        result = subprocess.run(
            ["nvidia-smi"],
            capture_output=True,
            timeout=5,
        )
        return result.returncode == 0
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return False
    except OSError as e:
        logger.warning(f"Failed to run nvidia-smi: {e}")
        return False
