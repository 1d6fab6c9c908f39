"""OPSkins Auth - OAuth2 login with OPSkins for Python web applications."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("opskins-auth")
except PackageNotFoundError:
    __version__ = "0.1.0"  # Fallback for development

__all__ = [
    "__version__",
    "StrategyConfig",
    "load_config",
    "OpskinsStrategy",
    "AuthRequest",
    "Redirect",
    "Success",
    "Failure",
]


# Lazy imports keep `import opskins_auth` cheap for the CLI
def __getattr__(name: str) -> object:
    """Lazy import module components."""
    if name in ("StrategyConfig", "load_config"):
        from .config import StrategyConfig, load_config
        return {"StrategyConfig": StrategyConfig, "load_config": load_config}[name]
    elif name in ("OpskinsStrategy", "AuthRequest", "Redirect", "Success", "Failure"):
        from .oauth import strategy
        return getattr(strategy, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
