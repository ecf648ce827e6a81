
from .models import BlockSpec, BlockScan, PatchRequest, PatchResult, SetupReport
from .errors import (
    ShellstrapError, PartialBlockError, ConfigError, MissingCommandError,
    UnsupportedPlatformError, CommandFailedError, CommandTimeoutError,
)
from .scanner import DocumentScanner, scan_document, strip_blocks
from .diffgen import DiffGenerator
from .patcher import MarkedBlockPatcher, patch
from .config import BootstrapConfig
from .blocks import micromamba_block, npm_path_block, plan_shell_patches
from .runner import CommandRunner
from .installer import MicromambaSetup, ColabSetup
from .selftests import ShellstrapSelfTests

__all__ = [
    "BlockSpec","BlockScan","PatchRequest","PatchResult","SetupReport",
    "ShellstrapError","PartialBlockError","ConfigError","MissingCommandError",
    "UnsupportedPlatformError","CommandFailedError","CommandTimeoutError",
    "DocumentScanner","scan_document","strip_blocks","DiffGenerator",
    "MarkedBlockPatcher","patch","BootstrapConfig",
    "micromamba_block","npm_path_block","plan_shell_patches",
    "CommandRunner","MicromambaSetup","ColabSetup","ShellstrapSelfTests",
]
