"""imagerecipe - build bootable OS images from declarative recipes.

This package orchestrates an ordered list of typed actions (unpack, overlay,
run, ostree commit/deploy, ...) inside a sandbox and publishes the resulting
tree atomically into an OSTree deployment.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
