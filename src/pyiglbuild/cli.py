"""
Command-line interface for pyiglbuild.

This module provides the `pyigl-build` CLI tool for building the libigl
Python binding modules.
"""

import argparse
import logging
import sys
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from rich.console import Console

from pyiglbuild import __version__, output
from pyiglbuild.build.build_profiles import BuildType
from pyiglbuild.build.errors import ManifestWarning, OrchestrationAborted
from pyiglbuild.build.orchestrator import OrchestrationResult, Orchestrator
from pyiglbuild.config import BuildConfig, ConfigError, ErrorPolicy, load_config
from pyiglbuild.pipeline import PipelineCancelledError, PipelineProgressDisplay, TextCallback, is_tty
from pyiglbuild.pipeline.callbacks import ProgressCallback

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

_GREEN = "\033[1;32m"
_RED = "\033[1;31m"
_YELLOW = "\033[1;33m"
_RESET = "\033[0m"


@dataclass
class BuildArgs:
    """Arguments for the build command."""

    project_dir: Path
    defines: list[str] = field(default_factory=list)
    build_type: Optional[str] = None
    error_policy: Optional[str] = None
    require_manifest: bool = False
    jobs: Optional[int] = None
    no_tui: bool = False
    verbose: bool = False


@dataclass
class PlanArgs:
    """Arguments for the plan command."""

    project_dir: Path
    defines: list[str] = field(default_factory=list)
    verbose: bool = False


@dataclass
class CleanArgs:
    """Arguments for the clean command."""

    project_dir: Path
    verbose: bool = False


def setup_logging(verbose: bool) -> None:
    """Send library diagnostics to stderr (debug detail only with --verbose)."""
    logger = logging.getLogger("pyiglbuild")
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
        logger.addHandler(handler)
    # Manifest failures are already logged and listed in the summary
    warnings.filterwarnings("ignore", category=ManifestWarning)


def _print_failure(title: str, detail: str) -> None:
    print()
    print(f"{_RED}✗ {title}{_RESET}")
    print()
    print(detail)


def _print_unexpected(e: Exception, verbose: bool) -> None:
    _print_failure("Unexpected error", f"{type(e).__name__}: {e}")
    if verbose:
        import traceback

        print()
        print("Traceback:")
        print(traceback.format_exc())


def _load_build_config(args: BuildArgs) -> BuildConfig:
    config = load_config(args.project_dir, defines=args.defines)
    changes: dict[str, object] = {}
    if args.build_type is not None:
        try:
            changes["build_type"] = BuildType.parse(args.build_type)
        except ValueError as e:
            raise ConfigError(str(e)) from e
    if args.error_policy is not None:
        changes["error_policy"] = ErrorPolicy(args.error_policy)
    if args.require_manifest:
        changes["require_manifest"] = True
    if args.jobs is not None:
        if args.jobs < 1:
            raise ConfigError(f"--jobs must be >= 1, got {args.jobs}")
        changes["jobs"] = args.jobs
    return config.with_overrides(**changes) if changes else config


def _print_summary(result: OrchestrationResult) -> None:
    for task in result.tasks:
        if task.install_result is not None:
            print(f"  {_GREEN}✓{_RESET} {task.name:<28} -> {task.install_result.destination}")
            for message in task.warnings:
                print(f"      {_YELLOW}warning:{_RESET} {message}")
        else:
            print(f"  {_RED}✗{_RESET} {task.name:<28} {task.error_message}")
    if result.umbrella.root is not None:
        dependencies = ", ".join(result.umbrella.dependencies) or "(none)"
        print(f"  {result.umbrella.name}: {result.umbrella.root} + {dependencies}")
    if result.errors.has_warnings():
        warned = sum(1 for task in result.tasks if task.warnings)
        output.log_warning(f"{warned} module group(s) installed without an interface manifest")
    if output.is_verbose() and result.errors.get_errors():
        print()
        print(result.errors.format_errors())
    elif result.errors.has_fatal_errors():
        output.log_detail("Run with --verbose for the full error report", indent=2)


def build_command(args: BuildArgs) -> None:
    """Build and install every enabled module group.

    Examples:
        pyigl-build build                               # Build the current project
        pyigl-build build ../libigl-python-bindings     # Build a specific project
        pyigl-build build -D LIBIGL_COPYLEFT_CGAL=OFF   # Skip one module group
        pyigl-build build --best-effort -j 8            # Keep going past failures
    """
    output.set_verbose(args.verbose)
    output.log_header("pyigl-build", __version__)
    setup_logging(args.verbose)

    try:
        config = _load_build_config(args)

        callback: ProgressCallback
        display: Optional[PipelineProgressDisplay] = None
        if not args.no_tui and is_tty():
            title = f"Building libigl modules ({config.build_type.value}, {config.error_policy})"
            display = PipelineProgressDisplay(Console(), title=title, verbose=args.verbose)
            callback = display
        else:
            callback = TextCallback()

        orchestrator = Orchestrator(config, callback=callback)

        with output.TimedLogger("Resolving module groups", phase=(1, 3)) as step:
            groups = orchestrator.plan()
            for descriptor in groups:
                step.detail(f"{descriptor.target_name} -> {descriptor.install_destination}")
                if display is not None:
                    display.register_group(descriptor.target_name, descriptor.subpath)

        output.log_phase(2, 3, f"Building {len(groups)} module group(s) with {config.jobs} job(s)...")
        if display is not None:
            with display:
                result = orchestrator.run()
        else:
            result = orchestrator.run()

        output.log_phase(3, 3, "Summary")
        _print_summary(result)
        output.log_build_complete(result.elapsed, len(result.installed), len(result.failed))

        if result.success:
            print()
            print(f"{_GREEN}✓ Build successful!{_RESET}")
            sys.exit(0)
        _print_failure("Build finished with failures", result.errors.format_summary())
        sys.exit(1)

    except OrchestrationAborted as e:
        if isinstance(e.result, OrchestrationResult):
            _print_summary(e.result)
        _print_failure("Build aborted", str(e.cause))
        sys.exit(1)

    except ConfigError as e:
        _print_failure("Configuration error", str(e))
        sys.exit(1)

    except (KeyboardInterrupt, PipelineCancelledError):
        print()
        print(f"{_YELLOW}✗ Build interrupted{_RESET}")
        sys.exit(130)  # Standard exit code for SIGINT

    except Exception as e:
        _print_unexpected(e, args.verbose)
        sys.exit(1)


def plan_command(args: PlanArgs) -> None:
    """Show the module targets a build would produce, without building.

    Examples:
        pyigl-build plan
        pyigl-build plan -D LIBIGL_EMBREE=OFF
    """
    setup_logging(args.verbose)
    try:
        config = load_config(args.project_dir, defines=args.defines)
        orchestrator = Orchestrator(config)
        groups = orchestrator.plan()

        print(f"Module targets ({config.build_type.value}):")
        for descriptor in groups:
            print(f"  {descriptor.target_name}")
            print(f"      subpath:     {descriptor.subpath or '(root)'}")
            print(f"      links:       {', '.join(descriptor.link_libraries)}")
            print(f"      install:     {descriptor.install_destination}")
        dependencies = [d.target_name for d in groups if not d.is_root]
        print(f"Umbrella target pyigl depends on: {', '.join(dependencies) or '(none)'}")
        sys.exit(0)

    except ConfigError as e:
        _print_failure("Configuration error", str(e))
        sys.exit(1)

    except Exception as e:
        _print_unexpected(e, args.verbose)
        sys.exit(1)


def clean_command(args: CleanArgs) -> None:
    """Remove the build directory and generated module files.

    Examples:
        pyigl-build clean
    """
    setup_logging(args.verbose)
    try:
        config = load_config(args.project_dir)
        removed = Orchestrator(config).clean()
        for path in removed:
            if args.verbose:
                print(f"Removed {path}")
        print(f"{_GREEN}✓ Cleaned {len(removed)} path(s){_RESET}")
        sys.exit(0)

    except ConfigError as e:
        _print_failure("Configuration error", str(e))
        sys.exit(1)

    except PermissionError as e:
        _print_failure("Error: Permission denied", str(e))
        sys.exit(1)

    except Exception as e:
        _print_unexpected(e, args.verbose)
        sys.exit(1)


def _add_project_dir(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "project_dir",
        nargs="?",
        type=Path,
        default=Path.cwd(),
        help="Project directory (default: current directory)",
    )


def _add_defines(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-D",
        dest="defines",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Set a module option, e.g. -D LIBIGL_EMBREE=OFF (repeatable)",
    )


def _add_verbose(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose output",
    )


def main(argv: Optional[Sequence[str]] = None) -> None:
    """pyigl-build - build the libigl Python binding modules."""
    parser = argparse.ArgumentParser(
        prog="pyigl-build",
        description="pyigl-build - build the libigl Python binding modules",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"pyigl-build {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Build command
    build_parser = subparsers.add_parser(
        "build",
        help="Build and install every enabled module group",
    )
    _add_project_dir(build_parser)
    _add_defines(build_parser)
    build_parser.add_argument(
        "--build-type",
        default=None,
        choices=[t.value for t in BuildType],
        help="Build type (default: from pyiglbuild.ini, else Release)",
    )
    policy = build_parser.add_mutually_exclusive_group()
    policy.add_argument(
        "--fail-fast",
        dest="error_policy",
        action="store_const",
        const=ErrorPolicy.FAIL_FAST.value,
        default=None,
        help="Abort the whole build on the first group failure (default)",
    )
    policy.add_argument(
        "--best-effort",
        dest="error_policy",
        action="store_const",
        const=ErrorPolicy.BEST_EFFORT.value,
        help="Skip failing module groups and build the rest",
    )
    build_parser.add_argument(
        "--require-manifest",
        action="store_true",
        help="Treat interface manifest (.pyi) generation failures as errors",
    )
    build_parser.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=None,
        help="Number of parallel module builds (default: CPU count)",
    )
    build_parser.add_argument(
        "--no-tui",
        action="store_true",
        help="Plain text progress even on a terminal",
    )
    _add_verbose(build_parser)

    # Plan command
    plan_parser = subparsers.add_parser(
        "plan",
        help="Show the module targets a build would produce",
    )
    _add_project_dir(plan_parser)
    _add_defines(plan_parser)
    _add_verbose(plan_parser)

    # Clean command
    clean_parser = subparsers.add_parser(
        "clean",
        help="Remove the build directory and generated module files",
    )
    _add_project_dir(clean_parser)
    _add_verbose(clean_parser)

    # Parse arguments
    parsed_args = parser.parse_args(argv)

    # If no command specified, show help
    if not parsed_args.command:
        parser.print_help()
        sys.exit(0)

    # Validate project directory exists
    if not parsed_args.project_dir.exists():
        print(f"{_RED}✗ Error: Path does not exist: {parsed_args.project_dir}{_RESET}")
        sys.exit(2)

    if parsed_args.command == "build":
        build_command(
            BuildArgs(
                project_dir=parsed_args.project_dir,
                defines=parsed_args.defines,
                build_type=parsed_args.build_type,
                error_policy=parsed_args.error_policy,
                require_manifest=parsed_args.require_manifest,
                jobs=parsed_args.jobs,
                no_tui=parsed_args.no_tui,
                verbose=parsed_args.verbose,
            )
        )
    elif parsed_args.command == "plan":
        plan_command(PlanArgs(project_dir=parsed_args.project_dir, defines=parsed_args.defines, verbose=parsed_args.verbose))
    elif parsed_args.command == "clean":
        clean_command(CleanArgs(project_dir=parsed_args.project_dir, verbose=parsed_args.verbose))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
