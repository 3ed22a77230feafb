from __future__ import annotations


class PluginError(Exception):
    """Base class for every failure raised by the plugin subsystem."""

    def __init__(self, message: str, *, plugin_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.plugin_id = plugin_id


class NetworkError(PluginError):
    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status_code: int | None = None,
        plugin_id: str | None = None,
    ) -> None:
        super().__init__(message, plugin_id=plugin_id)
        self.url = url
        self.status_code = status_code


class NotFoundError(NetworkError):
    pass


class ManifestNotFoundError(NotFoundError):
    pass


class BundleNotFoundError(NotFoundError):
    pass


class ParseError(PluginError):
    pass


class ManifestParseError(ParseError):
    pass


class InvalidSourceError(ParseError):
    pass


class ValidationError(PluginError):
    def __init__(
        self,
        errors: list[str],
        *,
        warnings: list[str] | None = None,
        plugin_id: str | None = None,
    ) -> None:
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        message = "Invalid manifest:\n" + "\n".join(f"- {error}" for error in self.errors)
        super().__init__(message, plugin_id=plugin_id)


class CompatibilityError(PluginError):
    pass


class DuplicateInstallError(PluginError):
    pass


class ExecutionError(PluginError):
    pass


class RegistrationTimeoutError(ExecutionError):
    pass


class RuntimeNotInitializedError(PluginError):
    pass


class PluginLoadError(PluginError):
    pass


class StorageError(PluginError):
    pass
