"""ZPod OS builder (Python-first, step-driven).

Core design goals:
- Explicit build context threaded through named steps
- Cached downloads (skip if already present)
- Scoped mounts and loop devices, always released
- Idempotent configuration patches
- Centralized logging
"""

__all__ = []
