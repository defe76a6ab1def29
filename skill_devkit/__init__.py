"""Device-plugin SDK: load device classes from manifests and run them on asyncio."""

__version__ = "0.1.0"
