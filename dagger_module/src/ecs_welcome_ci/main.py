"""Dagger pipeline for the ECS welcome service.

This module runs the service and its test suites in containers,
so the unit, e2e and BDD suites see the same environment locally and in CI.
"""

import asyncio

import dagger as dg
from dagger import dag, function, object_type

WELCOME = "Welcome to the world of ECS...!"
SERVICE_PORT = 8000


@object_type
class EcsWelcomeCi:
    """Containerized testing for the ECS welcome service using uv.

    This module provides:
    - Unit tests in isolated containers
    - Unit tests across multiple Python versions
    - The service itself as a Dagger service
    - e2e and BDD suites bound to that service
    """

    # Base container creation
    @function
    def test_container(
        self, source: dg.Directory, python_version: str = "3.12"
    ) -> dg.Container:
        """Create a base container with uv and source code.

        Args:
            source: Directory containing the source code
            python_version: Python version to use (default: 3.12)

        Returns:
            Container configured with uv and source code
        """
        uv_cache = dag.cache_volume("uv")

        return (
            dag.container()
            .from_(f"ghcr.io/astral-sh/uv:python{python_version}-bookworm-slim")
            .with_mounted_cache("/root/.cache/uv", uv_cache)
            .with_directory("/app", source)
            .with_workdir("/app")
            .with_env_variable("UV_SYSTEM_PYTHON", "1")
        )

    def _with_test_deps(
        self, source: dg.Directory, python_version: str
    ) -> dg.Container:
        return self.test_container(source, python_version).with_exec(
            ["uv", "pip", "install", "-e", ".[test]"]
        )

    # Test suites
    @function
    async def unit_test(
        self, source: dg.Directory, python_version: str = "3.12"
    ) -> str:
        """Run the in-process unit suite with pytest."""
        return await (
            self._with_test_deps(source, python_version)
            .with_exec(["pytest", "tests/unit", "-v", "--tb=short"])
            .stdout()
        )

    @function
    async def unit_test_matrix(
        self, source: dg.Directory, versions: str = "3.10,3.11,3.12"
    ) -> str:
        """Run unit tests concurrently on multiple Python versions.

        Args:
            source: Directory containing the source code
            versions: Comma-separated list of Python versions

        Returns:
            Formatted test results for all versions
        """
        version_list = [v.strip() for v in versions.split(",") if v.strip()]

        async def test_version(version: str) -> str:
            try:
                result = await self.unit_test(source, version)
                return f"Python {version}: PASSED\n{result}"
            except dg.ExecError as e:
                return f"Python {version}: FAILED\n{e.stdout}{e.stderr}"

        results = await asyncio.gather(*[test_version(v) for v in version_list])

        output_lines = ["=== MULTI-VERSION TEST RESULTS ===", ""]
        for result in results:
            output_lines.extend([result, "=" * 50, ""])

        return "\n".join(output_lines)

    @function
    async def run_test(
        self, source: dg.Directory, path: str, python_version: str = "3.12"
    ) -> str:
        """Run tests at a specific path.

        Args:
            source: Directory containing the source code
            path: Path to test files or directory
            python_version: Python version to use

        Returns:
            Test output from pytest
        """
        return await (
            self._with_test_deps(source, python_version)
            .with_exec(["pytest", path, "-v", "--tb=short"])
            .stdout()
        )

    # Service-related functions
    @function
    def welcome_service(
        self, source: dg.Directory, python_version: str = "3.12"
    ) -> dg.Service:
        """Run the ECS welcome service as a Dagger service on port 8000.

        Bind it into other containers with with_service_binding to reach it
        by hostname.
        """
        return (
            self.test_container(source, python_version)
            .with_exec(["uv", "pip", "install", "-e", "."])
            .with_env_variable("HOST", "0.0.0.0")
            .with_env_variable("PORT", str(SERVICE_PORT))
            .with_exposed_port(SERVICE_PORT)
            .as_service(args=["python", "-m", "ecs_welcome"])
        )

    @function
    async def smoke_test(
        self, source: dg.Directory, python_version: str = "3.12"
    ) -> str:
        """Call GET /ecs/welcome from a curl container and check the answer.

        Raises:
            ValueError: if the status or body differ from the welcome contract
        """
        client = (
            dag.container()
            .from_("alpine:latest")
            .with_exec(["apk", "add", "--no-cache", "curl"])
            .with_service_binding("api", self.welcome_service(source, python_version))
        )
        url = f"http://api:{SERVICE_PORT}/ecs/welcome"

        status = await client.with_exec(
            ["curl", "-s", "-o", "/dev/null", "-w", "%{http_code}", url]
        ).stdout()
        body = await client.with_exec(["curl", "-s", url]).stdout()

        if status.strip() != "200" or body != WELCOME:
            raise ValueError(f"unexpected response: {status.strip()} {body!r}")

        return "\n".join(
            [
                "=== SMOKE TEST RESULTS ===",
                "",
                "GET /ecs/welcome:",
                f"status: {status.strip()}",
                f"body: {body}",
            ]
        )

    @function
    async def integration_test(
        self, source: dg.Directory, python_version: str = "3.12"
    ) -> str:
        """Run the e2e and BDD suites against the containerized service.

        The suites pick up API_BASE_URL and call the bound service instead
        of starting one in-process.
        """
        return await (
            self._with_test_deps(source, python_version)
            .with_service_binding("api", self.welcome_service(source, python_version))
            .with_env_variable("API_BASE_URL", f"http://api:{SERVICE_PORT}")
            .with_exec(["pytest", "tests/e2e", "tests/bdd", "-v", "--tb=short"])
            .stdout()
        )
