"""Exceptions raised while resolving and editing manifests."""


class DepEditError(Exception):
    """Base class for all depedit errors."""


class InvalidArguments(DepEditError):
    """The combination of command-line arguments cannot be honoured."""


class AmbiguousBatchArguments(InvalidArguments):
    """A per-crate modifier was given alongside several crates."""


class DanglingFeatureToken(InvalidArguments):
    """A ``+feature`` token was not preceded by a crate."""


class ConflictingGitAndVersion(InvalidArguments):
    """A git source was requested for a crate that also names a version."""


class UnstableFlagRequired(InvalidArguments):
    """An unstable option was used without its ``-Z`` gate."""


class InvalidCrateSpec(DepEditError):
    """A crate reference could not be parsed."""


class InvalidVersionRequirement(InvalidCrateSpec):
    """A version requirement is not valid Cargo syntax."""


class SelfDependency(DepEditError):
    """A package was asked to depend on itself."""


class VersionLookupFailed(DepEditError):
    """The registry could not provide a version for a crate."""


class OfflineLookupError(VersionLookupFailed):
    """Resolution needed the registry but the network is disabled."""


class UnknownRegistry(DepEditError):
    """No API endpoint is configured for a named registry."""


class KeyNotFound(DepEditError):
    """A dependency or table to remove does not exist."""


class ManifestError(DepEditError):
    """A manifest is missing required data or cannot be parsed."""


class ManifestNotFound(ManifestError):
    """No manifest file exists at the expected location."""


class PackageNotFound(DepEditError):
    """No workspace member matches a package id."""


class ManifestEditError(DepEditError):
    """Applying resolved dependencies to the document failed."""


class WriteFailed(DepEditError):
    """The edited manifest could not be flushed to disk."""
