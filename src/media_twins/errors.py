from __future__ import annotations


class MediaTwinsError(Exception):
    """Base class for everything the clean-up runs raise on purpose."""


class ConfigurationError(MediaTwinsError):
    """A required filter or setting is missing or malformed. Raised before any scan."""


class StoreError(MediaTwinsError):
    """A select or delete against the store failed."""


class ExtensionCallbackError(MediaTwinsError):
    """A registered keep-ids / keep-keys callback raised."""

    def __init__(self, hook: str, callback: object, cause: BaseException) -> None:
        name = getattr(callback, "__qualname__", repr(callback))
        super().__init__(f"{hook} callback {name} failed: {cause}")
        self.hook = hook
        self.callback = callback


class ScanInterrupted(MediaTwinsError):
    """The scan was stopped before it finished; the keep-set is incomplete."""
