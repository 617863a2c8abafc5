"""Helper commands for building APK packages: tar checksumming, package
splitting, source fetching, limited root access and temp directory removal."""

__version__ = "3.15.0"
__all__ = ["tar", "gzsplit", "fetch", "sudo", "rmtemp"]