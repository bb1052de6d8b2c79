"""Code-execution sandbox adapters.

The coding grader only depends on CodeExecutor.execute_tests(): one
TestExecutionResult per submitted TestCase, in any order. Two adapters are
provided: DockerCodeExecutor runs every case in a throwaway container, and
LocalProcessExecutor runs Python submissions as local subprocesses for hosts
without Docker.
"""
import asyncio
import json
import logging
import math
import os
import platform
import shutil
import sys
import tempfile
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import docker
from docker.errors import DockerException, NotFound
from requests.exceptions import ConnectionError as RequestsConnectionError, ReadTimeout

from .config import DEFAULT_IMAGES
from .exceptions import SandboxError, SandboxUnavailableError, UnsupportedLanguageError
from .types import TestCase, TestExecutionResult

logger = logging.getLogger('grading')
sandbox_logger = logging.getLogger('sandbox_operations')

COMPILE_FAILED_EXIT_CODE = 100
OOM_EXIT_CODE = 137

LANGUAGE_ALIASES = {
    'py': 'python',
    'python3': 'python',
    'js': 'javascript',
    'node': 'javascript',
    'c++': 'cpp',
}


def canonical_language(language: str) -> str:
    language = (language or '').strip().lower()
    return LANGUAGE_ALIASES.get(language, language)


@dataclass
class ExecutionRequest:
    language: str
    code: str
    test_cases: List[TestCase] = field(default_factory=list)
    # seconds / megabytes, used for cases that carry no limit of their own
    time_limit: float = 5
    memory_limit: int = 256


def compare_outputs(actual: Any, expected: Any) -> bool:
    """Compare program output with the expected output.

    Values that both read as numbers are compared within 0.001; everything
    else is compared as trimmed text.
    """
    actual_text = str(actual).strip()
    expected_text = str(expected).strip()
    if actual_text == expected_text:
        return True
    try:
        return math.isclose(float(actual_text), float(expected_text), rel_tol=0, abs_tol=0.001)
    except ValueError:
        return False


def stdin_text(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, str):
        return value
    return json.dumps(value)


class CodeExecutor:
    """Base class for code-execution sandboxes."""

    async def execute_tests(self, request: ExecutionRequest) -> List[TestExecutionResult]:
        """Run ``request.code`` against every test case.

        Returns:
            One TestExecutionResult per test case

        Raises:
            SandboxError: if the sandbox itself fails
        """
        raise NotImplementedError("Subclasses must implement execute_tests method")


class DockerCodeExecutor(CodeExecutor):
    """Run submissions inside Docker containers, one container per test case."""

    SOURCE_FILES = {
        'python': 'submission.py',
        'javascript': 'submission.js',
        'c': 'submission.c',
        'cpp': 'submission.cpp',
    }

    def __init__(self, images: Optional[Dict[str, str]] = None, client=None):
        """Initialize the executor.

        Args:
            images: Docker image per language, defaults to DEFAULT_IMAGES
            client: Pre-built docker client; created on first use otherwise
        """
        self.images = dict(DEFAULT_IMAGES)
        self.images.update(images or {})
        self.client = client

    def _initialize_docker(self):
        """Initialize Docker client, trying each connection method for the platform."""
        logger.info("Initializing Docker client")
        connection_errors = []

        system = platform.system()
        logger.debug(f"Operating system: {system}")

        if system == 'Windows':
            candidates = [
                ('named pipe', lambda: docker.DockerClient(base_url='npipe:////./pipe/docker_engine')),
                ('TCP', lambda: docker.DockerClient(base_url='tcp://localhost:2375')),
            ]
        else:
            candidates = [('environment variables', docker.from_env)]

        for description, factory in candidates:
            try:
                client = factory()
                client.ping()
                logger.info(f"Connected to Docker using {description}")
                return client
            except DockerException as e:
                connection_errors.append(f"{description} error: {str(e)}")
                logger.debug(f"Docker connection via {description} failed: {e}")

        logger.warning(f"Failed to connect to Docker. Errors: {connection_errors}")
        raise SandboxUnavailableError(f"Docker is not available: {'; '.join(connection_errors)}")

    def _command_for(self, language: str, input_file: str) -> List[str]:
        source = f"/app/{self.SOURCE_FILES[language]}"
        if language == 'python':
            script = f"python {source} < /app/{input_file}"
        elif language == 'javascript':
            script = f"node {source} < /app/{input_file}"
        else:
            compiler, standard = ('g++', 'c++17') if language == 'cpp' else ('gcc', 'c11')
            script = (
                f"{compiler} -std={standard} -O2 -o /tmp/program {source} -lm 2>/tmp/compile.log "
                f"|| {{ cat /tmp/compile.log >&2; exit {COMPILE_FAILED_EXIT_CODE}; }}; "
                f"/tmp/program < /app/{input_file}"
            )
        return ["/bin/sh", "-c", script]

    async def execute_tests(self, request: ExecutionRequest) -> List[TestExecutionResult]:
        language = canonical_language(request.language)
        if language not in self.SOURCE_FILES:
            raise UnsupportedLanguageError(request.language)

        loop = asyncio.get_running_loop()
        cancelled = threading.Event()
        try:
            return await loop.run_in_executor(None, self._execute_all, language, request, cancelled)
        except asyncio.CancelledError:
            # the worker thread cannot be interrupted, stop it between cases
            cancelled.set()
            raise

    def _execute_all(self, language: str, request: ExecutionRequest,
                     cancelled: Optional[threading.Event] = None) -> List[TestExecutionResult]:
        start_time = time.time()
        logger.info(f"Starting sandboxed execution for {language}: {len(request.test_cases)} test cases")
        if self.client is None:
            self.client = self._initialize_docker()

        temp_dir = tempfile.mkdtemp(prefix='quiz-sandbox-')
        logger.debug(f"Created temporary directory: {temp_dir}")
        try:
            with open(os.path.join(temp_dir, self.SOURCE_FILES[language]), 'w', encoding='utf-8') as f:
                f.write(request.code)

            results = []
            for position, test_case in enumerate(request.test_cases):
                if cancelled is not None and cancelled.is_set():
                    sandbox_logger.warning(f"DOCKER RUN CANCELLED: skipping {len(request.test_cases) - position} "
                                           f"remaining test cases")
                    break
                input_file = f"input_{position}.txt"
                with open(os.path.join(temp_dir, input_file), 'w', encoding='utf-8') as f:
                    f.write(stdin_text(test_case.input))
                results.append(self._run_docker_test(language, test_case, input_file, temp_dir, request))

            logger.info(f"Sandboxed execution completed in {time.time() - start_time:.2f} seconds")
            return results
        finally:
            try:
                shutil.rmtree(temp_dir)
                logger.debug(f"Cleaned up temporary directory: {temp_dir}")
            except OSError as e:
                logger.warning(f"Failed to clean up temporary directory: {e}")

    def _run_docker_test(self, language: str, test_case: TestCase, input_file: str,
                         temp_dir: str, request: ExecutionRequest) -> TestExecutionResult:
        """Run one test case in a container and interpret its exit state."""
        image = self.images[language]
        command = self._command_for(language, input_file)
        time_limit = test_case.time_limit or request.time_limit
        memory_limit = test_case.memory_limit or request.memory_limit

        sandbox_logger.info(f"DOCKER RUN: {image} (test case {test_case.id})")
        sandbox_logger.debug(f"Command: {' '.join(command)}")

        start_time = time.time()
        try:
            container = self.client.containers.run(
                image,
                command,
                volumes={temp_dir: {'bind': '/app', 'mode': 'ro'}},
                mem_limit=f"{memory_limit}m",
                network_disabled=True,
                detach=True,
            )
        except DockerException as e:
            sandbox_logger.error(f"DOCKER ERROR: {str(e)}")
            raise SandboxError(f"Docker execution error: {str(e)}") from e

        try:
            try:
                status = container.wait(timeout=time_limit)
            except (ReadTimeout, RequestsConnectionError):
                sandbox_logger.warning(f"Test case {test_case.id} exceeded {time_limit}s, killing container")
                container.kill()
                return TestExecutionResult(
                    test_case_id=test_case.id,
                    passed=False,
                    error=f"Execution timeout ({time_limit} seconds)",
                    execution_time=time.time() - start_time,
                    timed_out=True,
                )

            execution_time = time.time() - start_time
            stdout = container.logs(stdout=True, stderr=False).decode('utf-8', errors='replace')
            stderr = container.logs(stdout=False, stderr=True).decode('utf-8', errors='replace')
            container.reload()
            oom_killed = container.attrs.get('State', {}).get('OOMKilled', False)
            exit_code = status.get('StatusCode', 0)
            sandbox_logger.debug(f"Exit code: {exit_code}, output: {stdout[:500]}")
        except DockerException as e:
            sandbox_logger.error(f"DOCKER ERROR: {str(e)}")
            raise SandboxError(f"Docker execution error: {str(e)}") from e
        finally:
            try:
                container.remove(force=True)
            except NotFound:
                pass
            except DockerException as e:
                sandbox_logger.warning(f"Failed to remove container: {e}")

        return self._interpret(test_case, exit_code, stdout, stderr, execution_time, oom_killed)

    @staticmethod
    def _interpret(test_case: TestCase, exit_code: int, stdout: str, stderr: str,
                   execution_time: float, oom_killed: bool = False) -> TestExecutionResult:
        if exit_code == COMPILE_FAILED_EXIT_CODE:
            return TestExecutionResult(
                test_case_id=test_case.id, passed=False,
                error=f"Compilation error: {stderr[:500]}",
                execution_time=execution_time, compilation_error=True,
            )
        if oom_killed or exit_code == OOM_EXIT_CODE:
            return TestExecutionResult(
                test_case_id=test_case.id, passed=False,
                error="Memory limit exceeded",
                execution_time=execution_time, memory_exceeded=True,
            )
        if exit_code != 0:
            return TestExecutionResult(
                test_case_id=test_case.id, passed=False,
                error=stderr[:500] or f"Process exited with code {exit_code}",
                output=stdout.strip(), execution_time=execution_time,
            )
        output = stdout.strip()
        return TestExecutionResult(
            test_case_id=test_case.id,
            passed=compare_outputs(output, test_case.expected_output),
            output=output,
            execution_time=execution_time,
        )


class LocalProcessExecutor(CodeExecutor):
    """Run Python submissions as local subprocesses.

    Not an isolation boundary: meant for development machines and trusted
    graders without Docker. Memory is capped with RLIMIT_AS on POSIX.
    """

    def __init__(self, python_executable: Optional[str] = None):
        self.python_executable = python_executable or sys.executable

    async def execute_tests(self, request: ExecutionRequest) -> List[TestExecutionResult]:
        language = canonical_language(request.language)
        if language != 'python':
            raise UnsupportedLanguageError(request.language)

        temp_dir = tempfile.mkdtemp(prefix='quiz-local-')
        source_path = os.path.join(temp_dir, 'submission.py')
        try:
            with open(source_path, 'w', encoding='utf-8') as f:
                f.write(request.code)
            results = []
            for test_case in request.test_cases:
                results.append(await self._run_test(source_path, test_case, request))
            return results
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)

    @staticmethod
    def _memory_limiter(memory_limit: int):
        if os.name != 'posix':
            return None

        def limit():
            import resource
            limit_bytes = memory_limit * 1024 * 1024
            resource.setrlimit(resource.RLIMIT_AS, (limit_bytes, limit_bytes))

        return limit

    async def _run_test(self, source_path: str, test_case: TestCase,
                        request: ExecutionRequest) -> TestExecutionResult:
        time_limit = test_case.time_limit or request.time_limit
        memory_limit = test_case.memory_limit or request.memory_limit
        sandbox_logger.info(f"LOCAL RUN: {source_path} (test case {test_case.id})")

        start_time = time.time()
        try:
            process = await asyncio.create_subprocess_exec(
                self.python_executable, '-I', source_path,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                preexec_fn=self._memory_limiter(memory_limit),
            )
        except OSError as e:
            raise SandboxError(f"Could not start Python interpreter: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(stdin_text(test_case.input).encode('utf-8')), timeout=time_limit)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            sandbox_logger.warning(f"Test case {test_case.id} exceeded {time_limit}s")
            return TestExecutionResult(
                test_case_id=test_case.id, passed=False,
                error=f"Execution timeout ({time_limit} seconds)",
                execution_time=time.time() - start_time, timed_out=True,
            )
        except BaseException:
            # cancelled by the caller, the child must not outlive the task
            if process.returncode is None:
                process.kill()
            sandbox_logger.warning(f"LOCAL RUN CANCELLED: test case {test_case.id}, process killed")
            raise

        execution_time = time.time() - start_time
        output = stdout.decode('utf-8', errors='replace').strip()
        errors = stderr.decode('utf-8', errors='replace')
        if process.returncode != 0:
            last_line = errors.strip().splitlines()[-1] if errors.strip() else ''
            return TestExecutionResult(
                test_case_id=test_case.id, passed=False,
                output=output,
                error=errors[-500:] or f"Process exited with code {process.returncode}",
                execution_time=execution_time,
                compilation_error=last_line.startswith(('SyntaxError', 'IndentationError', 'TabError')),
                memory_exceeded=last_line.startswith('MemoryError'),
            )

        return TestExecutionResult(
            test_case_id=test_case.id,
            passed=compare_outputs(output, test_case.expected_output),
            output=output,
            execution_time=execution_time,
        )
