"""
Offline console demo: fills a booking form end to end without a server.

Uses the real authoring session, runtime, schedule engine and the
in-memory LocalClinicBackend. No network calls.

Usage:
    python console_demo.py
    python console_demo.py --scenario returning
    python console_demo.py --scenario alternative
"""

import argparse
import asyncio
from datetime import date, timedelta
from typing import Optional

from formengine.config import settings
from formengine.engine.authoring import FormAuthoringSession
from formengine.engine.runtime import FormRuntime, RuntimeState
from formengine.engine.schedule import ScheduleContext, ScheduleEngine
from formengine.schemas.form_schema import FieldType, FormKind, consultation_type_key
from formengine.tools import availability, forms, patients, submissions
from formengine.tools.local import LocalClinicBackend

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"


def _next_weekday(weekday: int) -> str:
    today = date.today()
    ahead = (weekday - today.weekday()) % 7 or 7
    return (today + timedelta(days=ahead)).isoformat()


class ConsoleSession:
    """Drives one booking form session in the terminal."""

    # Scripted answers per scenario; None entries are resolved at run time.
    SCENARIOS: dict[str, dict[str, Optional[str]]] = {
        "booking": {
            "doctor": "doc-1",
            "consultation": "in-person",
            "date": None,
            "name": "Alex Morgan",
            "email": "alex.morgan@example.com",
            "phone": "+1 555 010 9999",
            "password": "correct-horse",
            "viewer": "Australia/Sydney",
        },
        "returning": {
            "doctor": "doc-3",
            "consultation": "in-person",
            "date": None,
            "name": None,
            "email": "sarah.connor@example.com",
            "phone": None,
            "password": None,
            "viewer": "America/New_York",
        },
        "alternative": {
            "doctor": "doc-4",
            "consultation": "online",
            "date": _next_weekday(5),
            "name": "Jamie Lee",
            "email": "jamie.lee@example.com",
            "phone": "0400 111 222",
            "password": "s3cret-pass",
            "viewer": "Europe/London",
        },
    }

    def __init__(self, viewer_timezone: Optional[str] = None) -> None:
        availability.reset()
        forms.reset()
        patients.reset()
        submissions.reset()
        self.backend = LocalClinicBackend()
        self.viewer_timezone = viewer_timezone or settings.schedule.viewer_timezone
        self.runtime: Optional[FormRuntime] = None

    def say(self, text: str) -> None:
        print(f"{GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def warn(self, text: str) -> None:
        print(f"{YELLOW}{text}{RESET}")

    async def _start(self, viewer_timezone: str) -> FormRuntime:
        authoring = FormAuthoringSession(kind=FormKind.BOOKING, store=self.backend)
        form_id = await authoring.save()
        model = await self.backend.get_form(form_id)
        self.system_log(f"Booking form '{form_id}' saved with {len(model.steps)} steps")

        runtime = FormRuntime(
            model,
            self.backend,
            schedule_context=ScheduleContext(viewer_timezone=viewer_timezone),
        )
        await runtime.load_entities()
        self.system_log(
            f"Loaded {len(runtime.practitioners)} practitioners, {len(runtime.services)} services"
        )
        self.runtime = runtime
        return runtime

    def _banner(self, title: str) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  CLINIC FORM ENGINE - {title}{RESET}")
        print(f"{BOLD}  App: {settings.app_name}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        print()

    def _show_step(self, runtime: FormRuntime) -> None:
        step = runtime.model.steps[runtime.step_index]
        print(f"\n{BOLD}Step {runtime.step_index + 1}/{runtime.step_count}: {step.title}{RESET}")

    def _advance(self, runtime: FormRuntime) -> bool:
        if runtime.advance():
            return True
        for field_id, message in runtime.errors.items():
            print(f"{RED}  {field_id}: {message}{RESET}")
        return False

    def _show_slots(self, engine: ScheduleEngine) -> None:
        slots = engine.display_slots()
        zone = engine.display_timezone()
        if not slots:
            self.warn(f"  No slots ({engine.load_state.value})")
            return
        rendered = ", ".join(f"{s.label} [{s.type_label}]" for s in slots)
        print(f"  {zone}: {rendered}")

    # ------------------------------------------------------------------ #
    # Scripted scenarios
    # ------------------------------------------------------------------ #

    async def run_scenario(self, scenario: str) -> None:
        script = self.SCENARIOS.get(scenario)
        if not script:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return

        self._banner(f"Scenario: {scenario}")
        runtime = await self._start(script["viewer"] or self.viewer_timezone)

        # Doctor
        self._show_step(runtime)
        runtime.set_value("practitioner-select", script["doctor"])
        self.say(f"Chose practitioner {script['doctor']}")
        self._advance(runtime)

        # Service
        self._show_step(runtime)
        await runtime.refresh_services()
        options = runtime.effective_options("service-select")
        self.system_log(f"Services offered: {[o.label for o in options]}")
        runtime.set_value("service-select", options[0].value if options else None)
        runtime.set_value(consultation_type_key("service-select"), script["consultation"])
        self.say(f"Chose {options[0].label if options else 'nothing'} ({script['consultation']})")
        self._advance(runtime)

        # Schedule
        self._show_step(runtime)
        engine = runtime.schedule("appointment-time")
        day = script["date"] or _next_weekday(0)
        engine.select_date(day)
        await engine.refresh_slots()
        self.system_log(f"Practitioner zone: {engine.practitioner_timezone()}")
        self._show_slots(engine)

        alternative = engine.no_slots_alternative()
        if alternative is not None:
            self.warn(f"  {alternative.message}")
            await engine.accept_alternative()
            self.say(f"Switched to {alternative.alternative.value}")
            self._show_slots(engine)

        engine.toggle_display_zone()
        self._show_slots(engine)
        slots = engine.display_slots()
        if slots:
            engine.choose_slot(slots[0])
            summary = engine.selection_summary()
            if summary is not None:
                self.say(
                    f"Booked {summary.date} {summary.time} {summary.practitioner_zone} "
                    f"= {summary.viewer_label}"
                )
        if not self._advance(runtime):
            return

        # Details
        self._show_step(runtime)
        runtime.set_value("lead-email", script["email"])
        await runtime.blur("lead-email")
        if "lead-password" in runtime.externally_hidden:
            self.system_log("Existing patient: profile auto-filled, password hidden")
        for field_id, key in (("lead-name", "name"), ("lead-phone", "phone"), ("lead-password", "password")):
            if script[key] and not runtime.value(field_id):
                runtime.set_value(field_id, script[key])
        for f in runtime.visible_fields():
            self.system_log(f"{f.label}: {runtime.value(f.id)}")

        await self._finish(runtime)

    async def _finish(self, runtime: FormRuntime) -> None:
        outcome = await runtime.submit()
        print(f"\n{BOLD}{'=' * 60}{RESET}")
        if outcome.success and outcome.receipt is not None:
            print(f"{BOLD}  Submitted: {outcome.receipt.submission_id}{RESET}")
            if outcome.receipt.meeting_link:
                print(f"{DIM}  Meeting link: {outcome.receipt.meeting_link}{RESET}")
        else:
            print(f"{RED}  Submission failed: {outcome.error}{RESET}")
        summary = runtime.summary()
        print(f"{DIM}  Doctor: {summary.doctor.name}{RESET}")
        print(f"{DIM}  Service: {summary.service.name} ({summary.service.consultation_type}){RESET}")
        print(
            f"{DIM}  Appointment: {summary.appointment.formatted_date} {summary.appointment.time} "
            f"{summary.appointment.timezone_abbreviation}{RESET}"
        )
        print(f"{DIM}  State trace: {' -> '.join(e.state.value for e in runtime.history)}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

    # ------------------------------------------------------------------ #
    # Interactive mode
    # ------------------------------------------------------------------ #

    async def run(self) -> None:
        self._banner("Console Demo")
        print(f"{BOLD}  Type 'quit' to exit{RESET}")
        runtime = await self._start(self.viewer_timezone)

        while runtime.state == RuntimeState.EDITING:
            self._show_step(runtime)
            for f in runtime.visible_fields():
                if f.is_layout:
                    continue
                if f.type == FieldType.SCHEDULE:
                    if not await self._ask_schedule(runtime, f.id):
                        return
                    continue
                options = runtime.effective_options(f)
                if options:
                    for i, option in enumerate(options, 1):
                        print(f"{DIM}  {i}. {option.label}{RESET}")
                answer = self._ask(f.label)
                if answer is None:
                    return
                if options and answer.isdigit() and 0 < int(answer) <= len(options):
                    answer = options[int(answer) - 1].value
                runtime.set_value(f.id, answer)
                await runtime.blur(f.id)

            if not runtime.is_last_step:
                if self._advance(runtime):
                    await runtime.refresh_services()
                continue
            if runtime.validate_step():
                await self._finish(runtime)
                return
            for field_id, message in runtime.errors.items():
                print(f"{RED}  {field_id}: {message}{RESET}")

    def _ask(self, label: str) -> Optional[str]:
        answer = input(f"{BLUE}[{label}] {RESET}").strip()
        if answer.lower() in ("quit", "exit", "q"):
            print(f"\n{DIM}Session ended.{RESET}")
            return None
        return answer

    async def _ask_schedule(self, runtime: FormRuntime, field_id: str) -> bool:
        engine = runtime.schedule(field_id)
        while True:
            day = self._ask("Date (YYYY-MM-DD)")
            if day is None:
                return False
            if not engine.select_date(day):
                self.warn("  Not a valid date")
                continue
            await engine.refresh_slots()
            alternative = engine.no_slots_alternative()
            if alternative is not None:
                self.warn(f"  {alternative.message}")
                if (self._ask("Switch? (y/n)") or "").lower().startswith("y"):
                    await engine.accept_alternative()
            slots = engine.display_slots()
            if not slots:
                continue
            for i, slot in enumerate(slots, 1):
                print(f"{DIM}  {i}. {slot.label} [{slot.type_label}]{RESET}")
            choice = self._ask("Slot number")
            if choice is None:
                return False
            if choice.isdigit() and 0 < int(choice) <= len(slots):
                engine.choose_slot(slots[int(choice) - 1])
                return True


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline console demo")
    parser.add_argument(
        "--scenario",
        choices=sorted(ConsoleSession.SCENARIOS),
        default=None,
        help="Auto-play a pre-scripted scenario instead of interactive mode",
    )
    args = parser.parse_args()

    session = ConsoleSession()
    if args.scenario:
        asyncio.run(session.run_scenario(args.scenario))
    else:
        asyncio.run(session.run())


if __name__ == "__main__":
    main()
