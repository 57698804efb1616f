"""WindowsSDK::Execute-VSTest operation."""

from __future__ import annotations

import glob
import logging
import ntpath
import os
import shutil
from dataclasses import dataclass
from typing import ClassVar

from ..arguments import is_blank, split_arguments
from ..context import OperationContext
from ..locators.vswhere import VSTEST_REQUIREMENTS, find_using_vswhere
from ..results.trx import record_unit_test_results
from .base import Operation

logger = logging.getLogger(__name__)


def clear_directory(path: str) -> None:
    """Delete the contents of a directory, keeping the directory itself."""
    if not os.path.isdir(path):
        return
    for entry in os.scandir(path):
        if entry.is_dir(follow_symlinks=False):
            shutil.rmtree(entry.path)
        else:
            os.remove(entry.path)


@dataclass(kw_only=True)
class VSTestOperation(Operation):
    """Runs unit tests with vstest.console.exe and records the .trx results."""

    namespace: ClassVar[str] = "WindowsSDK"
    script_alias: ClassVar[str] = "Execute-VSTest"
    summary: ClassVar[str] = "Runs VSTest unit tests on a specified test project."

    test_container: str
    test_group: str | None = None
    additional_arguments: str | None = None
    clear_existing_test_results: bool = False
    vstest_path: str | None = None

    def describe(self) -> str:
        return f"Run VSTest on {self.test_container}"

    async def get_vstest_path(self, context: OperationContext) -> str | None:
        explicit = self.vstest_path if not is_blank(self.vstest_path) else context.config.vstest_path
        if explicit:
            self.log_debug(f"VSTestExePath = {explicit}")
            if not context.file_exists(explicit):
                self.log_error(f"The file {explicit} does not exist. Verify that VSTest is installed.")
                return None
            return explicit

        self.log_debug(
            "VSTest path not configured or specified, attempting to find using vswhere.exe..."
        )
        path = await find_using_vswhere(self, context, VSTEST_REQUIREMENTS, return_file=True)
        if path:
            self.log_debug(f"Using VS test path: {path}")
            return path

        self.log_error(
            "Unable to find vstest.console.exe. Verify that VSTest is installed and set "
            "DOTNETOPS_VSTEST_PATH to its full path."
        )
        return None

    async def execute(self, context: OperationContext) -> None:
        vstest = await self.get_vstest_path(context)
        if not vstest:
            return

        container = context.resolve_path(self.test_container)
        source_dir = (ntpath if context.is_windows else os.path).dirname(container)
        results_dir = context.combine_path(source_dir, "TestResults")

        if self.clear_existing_test_results:
            self.log_debug(f"Clearing {results_dir} directory...")
            clear_directory(results_dir)

        argv = [
            vstest,
            container,
            "/logger:trx",
            *split_arguments(self.additional_arguments, windows=context.is_windows),
        ]
        await self.execute_command_line(context, argv, cwd=source_dir)

        if not context.directory_exists(results_dir):
            self.log_error(
                'Could not find the generated "TestResults" directory after running '
                f"unit tests at: {source_dir}"
            )
            return

        trx_files = glob.glob(context.combine_path(results_dir, "*.trx"))
        if not trx_files:
            self.log_error('There are no .trx files in the "TestResults" directory.')
            return

        trx_path = max(trx_files, key=os.path.getmtime)
        self.tests = record_unit_test_results(self.log, trx_path, self.test_group)
        self.data["trxFile"] = trx_path
