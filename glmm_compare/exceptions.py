"""Error types raised while fitting and harmonizing model results."""


class HarmonizerError(Exception):
    """Base class for all errors raised by glmm_compare."""


class PackageFailure(HarmonizerError):
    """A failure local to one fitting package.

    These never abort a comparison: the package is dropped from the merged
    table and the failure is reported as a diagnostic.
    """


class ConvergenceFailure(PackageFailure):
    """The fitting routine did not converge."""


class UnsupportedModelKind(PackageFailure):
    """The fitted object cannot produce a fixed-effect coefficient table."""


class ModelSetupError(PackageFailure):
    """The fitting routine rejected the data or model specification."""


class SchemaMismatch(HarmonizerError):
    """A result table does not have the expected columns or value types.

    Unlike :class:`PackageFailure` this is fatal for the data source.
    """
