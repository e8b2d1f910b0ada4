from .step_00_check_dependencies import CheckDependenciesStep
from .step_10_setup_environment import SetupEnvironmentStep
from .step_20_fetch_kernel import FetchKernelStep
from .step_30_fetch_container_runtime import FetchContainerRuntimeStep
from .step_40_build_disk_image import BuildDiskImageStep
from .step_50_prepare_initrd_rootfs import PrepareInitrdRootfsStep
from .step_60_optimize_rootfs import OptimizeRootfsStep
from .step_70_pack_initrd import PackInitrdStep
from .step_80_package_tarball import PackageTarballStep
from .step_90_package_iso import PackageIsoStep

__all__ = [
    "CheckDependenciesStep",
    "SetupEnvironmentStep",
    "FetchKernelStep",
    "FetchContainerRuntimeStep",
    "BuildDiskImageStep",
    "PrepareInitrdRootfsStep",
    "OptimizeRootfsStep",
    "PackInitrdStep",
    "PackageTarballStep",
    "PackageIsoStep",
]
