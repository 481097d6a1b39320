"""Utility modules for HydroSmith."""

from hydrosmith.utils.errors import (
    CRSMismatchError,
    DataValidationError,
    DependencyError,
    ExportWriteError,
    HydroSmithError,
    InvalidGeometryError,
    MalformedGeometryError,
    NonProjectedCRSError,
    ParameterError,
    RemoteFetchError,
    SchemaMismatchError,
    SourceNotFoundError,
    UnknownCRSError,
    format_dependency_error,
    format_parameter_error,
    format_validation_error,
    raise_dependency_error,
    raise_parameter_error,
    raise_validation_error,
)

__all__ = [
    "HydroSmithError",
    "DataValidationError",
    "ParameterError",
    "DependencyError",
    "SourceNotFoundError",
    "SchemaMismatchError",
    "MalformedGeometryError",
    "UnknownCRSError",
    "NonProjectedCRSError",
    "CRSMismatchError",
    "InvalidGeometryError",
    "RemoteFetchError",
    "ExportWriteError",
    "format_validation_error",
    "format_parameter_error",
    "format_dependency_error",
    "raise_validation_error",
    "raise_parameter_error",
    "raise_dependency_error",
]
