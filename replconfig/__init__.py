"""replconfig - application config templating and dependency resolution.

Renders ``{{repl ... }}`` / ``repl{{ ... }}`` templates found in a ``Config``
document, orders item evaluation by the references between items, and
renders manifests against the resolved values.
"""

try:
    from importlib.metadata import version

    __version__ = version("replconfig")
except Exception:
    __version__ = "0.0.0.dev0"

__all__ = ["__version__"]
