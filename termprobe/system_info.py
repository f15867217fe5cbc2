"""Minimal system facts passed to the planner with every question."""

import platform
from pathlib import Path


def read_os_release(path: str = "/etc/os-release") -> dict[str, str]:
    info: dict[str, str] = {}
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError:
        return info
    for line in content.splitlines():
        if "=" not in line or line.startswith("#"):
            continue
        key, _, value = line.partition("=")
        info[key.strip()] = value.strip().strip('"')
    return info


def gather_system_context(os_release_path: str = "/etc/os-release") -> dict[str, str]:
    """Return the OS name, distribution and kernel release."""
    release = read_os_release(os_release_path)
    return {
        "os": platform.system() or "Linux",
        "distro": release.get("PRETTY_NAME") or release.get("NAME") or "Unknown",
        "kernel": platform.release(),
        "machine": platform.machine(),
    }
