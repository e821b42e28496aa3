"""
Offline console demo: walks through garage scheduling scenarios.

Seeds an in-memory store with a small catalog and roster, then drives the
real GarageScheduler through assignment, conflict detection, status
changes and availability lookups. No database, no network calls.

Usage:
    python console_demo.py
    python console_demo.py --scenario assignment
    python console_demo.py --scenario lifecycle
    python console_demo.py --scenario availability
"""

import argparse
import datetime as dt
from typing import Any, Callable

from src.config import settings
from src.errors import SchedulingError
from src.schemas.actor_schema import AdminActor, CustomerActor, MechanicActor, StaffActor
from src.schemas.availability_schema import AvailabilitySlot
from src.schemas.booking_schema import BookingRequest
from src.schemas.catalog_schema import Mechanic, Service
from src.scheduling.scheduler import GarageScheduler
from src.stores.memory import InMemoryGarageStore

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

# A Tuesday
DEMO_DATE = dt.date(2025, 3, 18)

DEMO_SERVICES = [
    Service(id=1, name="Oil change", price=89.0, estimated_time=45),
    Service(id=2, name="Brake inspection", price=120.0, estimated_time=30),
    Service(id=3, name="Full service", price=349.0, estimated_time=180),
    Service(id=4, name="Tyre rotation", price=60.0, in_stock=False),
]

DEMO_MECHANICS = [
    Mechanic(id=1, name="Sam Reid", specialization="General servicing"),
    Mechanic(id=2, name="Priya Nair", specialization="Brakes and suspension"),
    Mechanic(id=3, name="Luis Ortega", specialization="Engines", is_active=False),
]


class ConsoleSession:
    """Runs scripted scheduling scenarios against a seeded scheduler."""

    def __init__(self) -> None:
        self.store = InMemoryGarageStore()
        self.scheduler = GarageScheduler(store=self.store)
        self.staff = StaffActor(user_id=100)
        self.admin = AdminActor(user_id=1)
        self.customer = CustomerActor(user_id=200, customer_id=20)
        self.mechanic = MechanicActor(user_id=300, mechanic_id=1)
        self._seed()

    def _seed(self) -> None:
        for service in DEMO_SERVICES:
            self.store.save_service(service)
        for mechanic in DEMO_MECHANICS:
            self.store.save_mechanic(mechanic)
        # Tuesday 08:00-17:00 for Sam, Tuesday 09:00-12:00 for Priya
        self.store.replace_mechanic_availability(
            1, [AvailabilitySlot(mechanic_id=1, day_of_week=2, start_time=dt.time(8), end_time=dt.time(17))]
        )
        self.store.replace_mechanic_availability(
            2, [AvailabilitySlot(mechanic_id=2, day_of_week=2, start_time=dt.time(9), end_time=dt.time(12))]
        )

    def say(self, who: str, text: str) -> None:
        print(f"{BLUE}{BOLD}[{who}]{RESET} {text}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def attempt(self, label: str, action: Callable[[], Any]) -> Any:
        """Run one scheduler call and print its outcome."""
        try:
            result = action()
        except SchedulingError as e:
            print(f"{RED}  x {label}: {e.kind} ({e.message}){RESET}")
            return None
        print(f"{GREEN}  + {label}{RESET}")
        return result

    def book(self, time: dt.time, service_id: int) -> str:
        booking = self.scheduler.create_booking(
            BookingRequest(
                service_id=service_id,
                vehicle_id=7,
                date=DEMO_DATE,
                time=time,
                customer_name="Alex Chen",
            ),
            self.customer,
        )
        self.system_log(f"Booking {booking.id} at {time:%H:%M} ({booking.status.value})")
        return booking.id

    # ------------------------------------------------------------------ #
    # Scenarios
    # ------------------------------------------------------------------ #

    def scenario_assignment(self) -> None:
        self.say("Customer", "Books an oil change (45 min) at 10:00 and a brake check at 10:30.")
        b1 = self.book(dt.time(10, 0), service_id=1)
        b2 = self.book(dt.time(10, 30), service_id=2)

        self.say("Staff", f"Assigns {DEMO_MECHANICS[0].name} to both.")
        booking = self.attempt(f"assign {b1}", lambda: self.scheduler.assign_mechanic(b1, 1, self.staff))
        if booking:
            task = self.store.get_task_by_booking(b1, 1)
            self.system_log(f"{b1} is {booking.status.value}; task {task.id} {task.start_time:%H:%M}-{task.end_time:%H:%M}")
        self.attempt(f"assign {b2} (overlaps 10:30-10:45)", lambda: self.scheduler.assign_mechanic(b2, 1, self.staff))

        self.say("Customer", "Books another brake check at 10:45, exactly when the oil change ends.")
        b3 = self.book(dt.time(10, 45), service_id=2)
        self.attempt(f"assign {b3} (touching endpoints)", lambda: self.scheduler.assign_mechanic(b3, 1, self.staff))

        self.say("Staff", f"Gives {b2} to {DEMO_MECHANICS[1].name} instead.")
        self.attempt(f"assign {b2} to mechanic 2", lambda: self.scheduler.assign_mechanic(b2, 2, self.staff))
        self.attempt(
            "assign inactive mechanic 3", lambda: self.scheduler.assign_mechanic(b2, 3, self.staff)
        )

    def scenario_lifecycle(self) -> None:
        self.say("Customer", "Books an oil change at 08:00 with mechanic 1 preferred.")
        booking = self.scheduler.create_booking(
            BookingRequest(
                service_id=1, vehicle_id=7, date=DEMO_DATE, time=dt.time(8), mechanic_id=1
            ),
            self.customer,
        )
        self.system_log(f"Booking {booking.id} is {booking.status.value}")

        self.say("Customer", "Tries to confirm it themselves.")
        self.attempt("customer sets confirmed", lambda: self.scheduler.set_booking_status(booking.id, "confirmed", self.customer))

        self.say("Mechanic", "Starts work, leaves a note, then finishes.")
        self.attempt("task in-progress", lambda: self.scheduler.set_task_status(booking.id, "in-progress", self.mechanic))
        self.attempt(
            "field note",
            lambda: self.scheduler.add_field_note(booking.id, "Drain plug thread worn, replaced washer", self.mechanic),
        )
        self.attempt("task completed", lambda: self.scheduler.set_task_status(booking.id, "completed", self.mechanic))
        final = self.scheduler.get_booking(booking.id, self.staff)
        self.system_log(f"Booking {final.id} is {final.status.value}, completed at {final.completed_at:%H:%M:%S}")

        self.say("Customer", "Tries to cancel the finished job.")
        self.attempt("cancel completed booking", lambda: self.scheduler.cancel_booking(booking.id, self.customer))

        self.say("Customer", "Tries an out-of-stock tyre rotation.")
        self.attempt("book tyre rotation", lambda: self.book(dt.time(14), service_id=4))

    def scenario_availability(self) -> None:
        self.say("Staff", f"Free brake-check windows on {DEMO_DATE:%A %d %b}.")
        for slot in self.scheduler.check_availability(DEMO_DATE, service_id=2)[:8]:
            self.system_log(f"mechanic {slot.mechanic_id}: {slot.start_time:%H:%M}-{slot.end_time:%H:%M}")

        self.say("Admin", "Moves Priya to afternoons.")
        self.attempt(
            "replace availability",
            lambda: self.scheduler.replace_mechanic_availability(
                2, [{"day_of_week": 2, "start_time": "13:00", "end_time": "17:00"}], self.admin
            ),
        )
        self.attempt(
            "replace with a reversed slot",
            lambda: self.scheduler.replace_mechanic_availability(
                2, [{"day_of_week": 2, "start_time": "17:00", "end_time": "13:00"}], self.admin
            ),
        )
        for slot in self.scheduler.check_availability(DEMO_DATE, service_id=3, mechanic_id=2):
            self.system_log(f"full service, mechanic 2: {slot.start_time:%H:%M}-{slot.end_time:%H:%M}")

    SCENARIOS: dict[str, str] = {
        "assignment": "scenario_assignment",
        "lifecycle": "scenario_lifecycle",
        "availability": "scenario_availability",
    }

    def run_scenario(self, scenario: str) -> None:
        """Play one scripted scenario."""
        method = self.SCENARIOS.get(scenario)
        if not method:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return

        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  {settings.app_name.upper()} - Scenario: {scenario}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        getattr(self, method)()
        print(f"{BOLD}{'=' * 60}{RESET}")

    def run(self) -> None:
        for scenario in self.SCENARIOS:
            self.run_scenario(scenario)
            # each scenario starts from the seeded state
            self.store.reset()
            self._seed()
        print(f"\n{YELLOW}Demo complete.{RESET}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline scheduling demo")
    parser.add_argument(
        "--scenario",
        choices=sorted(ConsoleSession.SCENARIOS),
        default=None,
        help="Play one scenario instead of all of them",
    )
    args = parser.parse_args()

    session = ConsoleSession()
    if args.scenario:
        session.run_scenario(args.scenario)
    else:
        session.run()


if __name__ == "__main__":
    main()
