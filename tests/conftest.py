"""Pytest fixtures for dotnetops-mcp tests."""

import os
import sys

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from dotnetops_mcp.config import ToolConfig  # noqa: E402
from dotnetops_mcp.context import OperationContext  # noqa: E402
from dotnetops_mcp.process import ProcessResult  # noqa: E402


class FakeRunner:
    """Process runner double that records argv and replays scripted results.

    Results are taken from ``handler(argv)`` when given, otherwise from the
    ``results`` queue, otherwise exit code 0 with no output. Output lines
    are fed to the callbacks like the real runner does. An exception
    instance in place of a result is raised.
    """

    def __init__(self, results=None, handler=None):
        self.calls = []
        self.results = list(results or [])
        self.handler = handler

    @property
    def commands(self):
        return [call["argv"] for call in self.calls]

    async def run(self, argv, cwd=None, env=None, timeout=None, on_stdout=None, on_stderr=None):
        self.calls.append({"argv": list(argv), "cwd": cwd, "env": env, "timeout": timeout})
        if self.handler is not None:
            result = self.handler(list(argv))
        elif self.results:
            result = self.results.pop(0)
        else:
            result = ProcessResult(0)
        if isinstance(result, BaseException):
            raise result
        if on_stdout is not None:
            for line in result.stdout.splitlines():
                on_stdout(line)
        if on_stderr is not None:
            for line in result.stderr.splitlines():
                on_stderr(line)
        return result

    def cancel(self):
        return False


@pytest.fixture
def tool_config(tmp_path):
    """Tool configuration with a private base directory."""
    return ToolConfig(base_directory=tmp_path / "base", timeout=60)


@pytest.fixture
def workspace(tmp_path):
    """Empty working directory."""
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def make_context(workspace, tool_config, runner):
    """Factory for operation contexts bound to the workspace and fake runner."""

    def _make(runner=runner, is_windows=False, environ=None, config=None, working_directory=None):
        return OperationContext(
            working_directory=str(working_directory or workspace),
            config=config or tool_config,
            runner=runner,
            environ={"PATH": ""} if environ is None else environ,
            is_windows=is_windows,
        )

    return _make


SAMPLE_TRX = """<?xml version="1.0" encoding="utf-8"?>
<TestRun id="1" name="run" xmlns="http://microsoft.com/schemas/VisualStudio/TeamTest/2010">
  <Results>
    <UnitTestResult testName="Calc.Adds" outcome="Passed"
        startTime="2024-03-01T10:00:00.1234567+00:00" duration="00:00:01.5000000" />
    <UnitTestResult testName="Calc.Divides" outcome="Failed"
        startTime="2024-03-01T10:00:02.0000000+00:00" duration="00:00:00.2500000">
      <Output>
        <ErrorInfo>
          <Message>Assert.Equal() Failure</Message>
          <StackTrace>at Calc.Divides() in CalcTests.cs:line 12</StackTrace>
        </ErrorInfo>
      </Output>
    </UnitTestResult>
    <UnitTestResult testName="Calc.Skipped" outcome="NotExecuted" duration="00:00:00" />
  </Results>
</TestRun>
"""

PASSING_TRX = """<?xml version="1.0" encoding="utf-8"?>
<TestRun xmlns="http://microsoft.com/schemas/VisualStudio/TeamTest/2010">
  <Results>
    <UnitTestResult testName="Calc.Adds" outcome="Passed" duration="00:00:00.0100000" />
  </Results>
</TestRun>
"""


@pytest.fixture
def sample_trx():
    return SAMPLE_TRX


@pytest.fixture
def passing_trx():
    return PASSING_TRX
