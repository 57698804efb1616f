"""Operations that drive the dotnet, MSBuild, devenv, VSTest and NuGet tools."""

from .base import Operation
from .devenv import DevEnvBuildOperation
from .dotnet import (
    DotNetBuildOperation,
    DotNetOperation,
    DotNetPackOperation,
    DotNetPublishOperation,
    DotNetTestOperation,
    DotNetToolOperation,
    DotNetVerbosity,
)
from .msbuild import MSBuildBuildProjectOperation
from .nuget import (
    CreateNuGetPackageOperation,
    NuGetOperation,
    PushNuGetPackageOperation,
    RestoreNuGetPackagesOperation,
)
from .vstest import VSTestOperation

# Command name -> operation class
OPERATIONS: dict[str, type[Operation]] = {
    "dotnet-build": DotNetBuildOperation,
    "dotnet-publish": DotNetPublishOperation,
    "dotnet-pack": DotNetPackOperation,
    "dotnet-test": DotNetTestOperation,
    "dotnet-tool": DotNetToolOperation,
    "msbuild-build-project": MSBuildBuildProjectOperation,
    "devenv-build": DevEnvBuildOperation,
    "vstest-run": VSTestOperation,
    "nuget-create-package": CreateNuGetPackageOperation,
    "nuget-push": PushNuGetPackageOperation,
    "nuget-restore-packages": RestoreNuGetPackagesOperation,
}


def get_operation(name: str) -> type[Operation]:
    """Look up an operation by command name or ``Namespace::Alias``.

    Raises:
        KeyError: If no operation matches
    """
    if name in OPERATIONS:
        return OPERATIONS[name]
    for cls in OPERATIONS.values():
        if cls.qualified_name().lower() == name.lower():
            return cls
    raise KeyError(name)


__all__ = [
    "OPERATIONS",
    "get_operation",
    "Operation",
    "DotNetOperation",
    "DotNetBuildOperation",
    "DotNetPublishOperation",
    "DotNetPackOperation",
    "DotNetTestOperation",
    "DotNetToolOperation",
    "DotNetVerbosity",
    "MSBuildBuildProjectOperation",
    "DevEnvBuildOperation",
    "VSTestOperation",
    "NuGetOperation",
    "CreateNuGetPackageOperation",
    "PushNuGetPackageOperation",
    "RestoreNuGetPackagesOperation",
]
