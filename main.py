"""
Clinic form engine entry point.

Runs the offline console demo or checks a stored form configuration
for structural problems.

Usage:
    Console mode: python main.py console [--scenario returning]
    Check a form: python main.py check form.json [--kind BOOKING]
"""

import argparse
import json
import logging
import sys
from typing import Optional

from formengine.config import settings
from formengine.errors import FormConfigError
from formengine.schemas.form_schema import FormKind, FormModel

logger = logging.getLogger(__name__)


def _run_console_mode(scenario: Optional[str]) -> None:
    """Start the offline console demo (no backend required)."""
    import asyncio

    from console_demo import ConsoleSession

    session = ConsoleSession()
    if scenario:
        asyncio.run(session.run_scenario(scenario))
    else:
        asyncio.run(session.run())


def _run_check(path: str, kind: Optional[str]) -> int:
    """Print every structural violation of a form config; 1 when any exist."""
    from formengine.engine.authoring import FormAuthoringSession

    try:
        with open(path, encoding="utf-8") as fh:
            config = json.load(fh)
    except (OSError, json.JSONDecodeError) as exc:
        print(f"Cannot read {path}: {exc}", file=sys.stderr)
        return 1

    if kind:
        config["kind"] = kind
    try:
        model = FormModel.from_config(config)
    except FormConfigError as exc:
        print(f"{path}: {exc.message}")
        for error in (exc.details or {}).get("errors", []):
            location = ".".join(str(part) for part in error.get("loc", ()))
            print(f"  - {location}: {error.get('msg')}")
        return 1

    violations = FormAuthoringSession(model).validate()
    if violations:
        print(f"{path}: {len(violations)} violation(s)")
        for violation in violations:
            print(f"  - {violation}")
        return 1

    print(f"{path}: OK ({model.kind.value}, {len(model.steps)} steps)")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog=settings.app_name)
    commands = parser.add_subparsers(dest="command", required=True)

    console = commands.add_parser("console", help="Run the offline console demo")
    console.add_argument("--scenario", default=None, help="Auto-play a scripted scenario")

    check = commands.add_parser("check", help="Check a form configuration file")
    check.add_argument("file")
    check.add_argument("--kind", choices=[k.value for k in FormKind], default=None)

    args = parser.parse_args(argv)
    if args.command == "console":
        _run_console_mode(args.scenario)
        return 0
    return _run_check(args.file, args.kind)


if __name__ == "__main__":
    sys.exit(main())
