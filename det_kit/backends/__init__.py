"""
Optional inference backends for det_kit.

Backends are kept in a separate module so the decode/NMS core stays lightweight
and can be used without installing inference runtimes.
"""

from __future__ import annotations

__all__ = []
