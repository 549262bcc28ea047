"""OSTree content store access.

This package handles:
- Backend-neutral repository and sysroot protocols
- The libostree backend (via PyGObject)
- Transactional commits and the pull + deploy protocol
"""

from imagerecipe.store.base import Deployment, StoreError

__all__ = ["Deployment", "StoreError"]
