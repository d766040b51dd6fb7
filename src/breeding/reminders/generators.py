"""System reminder generators.

Each generator is a pure function of the records it is given and ``today``.
System reminders get deterministic, non-UUID ids so that repeated runs
produce the same reminder (``birthday-<dog>``, ``heat-<dog>``,
``deworm-3w-<litter>`` ...).  A reminder is only emitted while ``today`` is
inside its window, configured per generator in breeding_config.yaml.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from uuid import UUID

from src.breeding.base import (
    DogRecord,
    HeatCycleRecord,
    LitterRecord,
    PlannedLitterRecord,
    PregnancyRecord,
    ReminderPriority,
    ReminderRecord,
)
from src.breeding.config_loader import BreedingConfig, get_breeding_config
from src.breeding.heat.store import latest_heat_date

logger = logging.getLogger("kennel.breeding.reminders.generators")


def _plural(n: int, word: str = "day") -> str:
    return f"{n} {word}{'' if n == 1 else 's'}"


def _anniversary(born: date, year: int) -> date:
    try:
        return born.replace(year=year)
    except ValueError:
        # 29 February in a non-leap year
        return date(year, 2, 28)


def _window_contains(days_until: int, days_before: int, days_after: int) -> bool:
    return -days_after <= days_until <= days_before


def generate_birthday_reminders(
    dogs: list[DogRecord], today: date, config: BreedingConfig | None = None
) -> list[ReminderRecord]:
    """Birthday reminders from 7 days before to 2 days after the birthday."""
    window = (config or get_breeding_config()).reminders.birthday
    reminders: list[ReminderRecord] = []
    for dog in dogs:
        if dog.date_of_birth is None:
            continue
        birthday = _anniversary(dog.date_of_birth, today.year)
        if (birthday - today).days < -window.days_after:
            birthday = _anniversary(dog.date_of_birth, today.year + 1)
        days_until = (birthday - today).days
        if not _window_contains(days_until, window.days_before, window.days_after):
            continue
        age = birthday.year - dog.date_of_birth.year
        if days_until == 0:
            description = f"{dog.name} turns {age} today!"
        elif days_until > 0:
            description = f"{dog.name} turns {age} in {_plural(days_until)}"
        else:
            description = f"{dog.name} turned {age} {_plural(-days_until)} ago"
        reminders.append(
            ReminderRecord(
                id=f"birthday-{dog.id}",
                title=f"{dog.name}'s Birthday",
                description=description,
                due_date=birthday,
                priority=ReminderPriority.low.value,
                type="birthday",
                dog_id=dog.id,
                related_id=dog.id,
            )
        )
    return reminders


def generate_vaccination_reminders(
    dogs: list[DogRecord], today: date, config: BreedingConfig | None = None
) -> list[ReminderRecord]:
    """Annual vaccination reminders, high priority once overdue."""
    rc = (config or get_breeding_config()).reminders
    reminders: list[ReminderRecord] = []
    for dog in dogs:
        if dog.vaccination_date is None:
            continue
        due = dog.vaccination_date + timedelta(days=rc.vaccination_interval_days)
        days_until = (due - today).days
        if not _window_contains(days_until, rc.vaccination.days_before, rc.vaccination.days_after):
            continue
        overdue = days_until < 0
        reminders.append(
            ReminderRecord(
                id=f"vaccine-{dog.id}",
                title=f"{dog.name}'s Vaccination {'Overdue' if overdue else 'Due'}",
                description=(
                    f"Vaccination overdue by {_plural(-days_until)}"
                    if overdue
                    else f"Vaccination due in {_plural(days_until)}"
                ),
                due_date=due,
                priority=(ReminderPriority.high if overdue else ReminderPriority.medium).value,
                type="vaccination",
                dog_id=dog.id,
                related_id=dog.id,
            )
        )
    return reminders


def generate_heat_reminders(
    dogs: list[DogRecord],
    cycles_by_dog: dict[UUID, list[HeatCycleRecord]],
    today: date,
    config: BreedingConfig | None = None,
) -> list[ReminderRecord]:
    """Next-heat reminders for female dogs with a known previous heat.

    The next heat is the latest heat (structured or legacy) plus the dog's
    interval.  Shown from 30 days before to 5 days after; high priority
    within 7 days.
    """
    cfg = config or get_breeding_config()
    rc = cfg.reminders
    reminders: list[ReminderRecord] = []
    for dog in dogs:
        if not dog.is_female:
            continue
        last = latest_heat_date(cycles_by_dog.get(dog.id, []), dog.heat_history)
        if last is None:
            continue
        interval = dog.heat_interval or cfg.heat_cycle.default_interval_days
        next_heat = last + timedelta(days=interval)
        days_until = (next_heat - today).days
        if not _window_contains(days_until, rc.heat.days_before, rc.heat.days_after):
            continue
        started = days_until < 0
        reminders.append(
            ReminderRecord(
                id=f"heat-{dog.id}",
                title=f"{dog.name}'s Heat {'Started' if started else 'Approaching'}",
                description=(
                    f"Heat started {_plural(-days_until)} ago"
                    if started
                    else f"Expected heat cycle in {_plural(days_until)}"
                ),
                due_date=next_heat,
                priority=(
                    ReminderPriority.high
                    if days_until <= rc.heat_high_priority_within_days
                    else ReminderPriority.medium
                ).value,
                type="heat",
                dog_id=dog.id,
                related_id=dog.id,
            )
        )
    return reminders


def generate_planned_heat_reminders(
    planned: list[PlannedLitterRecord], today: date, config: BreedingConfig | None = None
) -> list[ReminderRecord]:
    """Reminders for planned litters whose expected heat is in the next 14 days."""
    window = (config or get_breeding_config()).reminders.planned_heat
    reminders: list[ReminderRecord] = []
    for litter in planned:
        if litter.expected_heat_date is None:
            continue
        days_until = (litter.expected_heat_date - today).days
        if not _window_contains(days_until, window.days_before, window.days_after):
            continue
        reminders.append(
            ReminderRecord(
                id=f"auto-planned-heat-{litter.female_id}-{litter.id}",
                title=f"Upcoming Heat for {litter.female_name}",
                description=f"Heat expected in {_plural(days_until)}",
                due_date=litter.expected_heat_date,
                priority=ReminderPriority.high.value,
                type="heat",
                dog_id=litter.female_id,
                related_id=litter.id,
            )
        )
    return reminders


def generate_litter_reminders(
    litters: list[LitterRecord], today: date, config: BreedingConfig | None = None
) -> list[ReminderRecord]:
    """Puppy-care milestones (deworming, vet visit) and early weigh-ins."""
    rc = (config or get_breeding_config()).reminders
    reminders: list[ReminderRecord] = []
    for litter in litters:
        if litter.archived:
            continue
        age = (today - litter.date_of_birth).days
        if age < 0:
            continue
        for m in rc.litter_milestones:
            if not m.window_start <= age <= m.window_end:
                continue
            reminders.append(
                ReminderRecord(
                    id=f"{m.key}-{litter.id}",
                    title=m.title.format(litter=litter.name),
                    description=m.description or None,
                    due_date=litter.date_of_birth + timedelta(days=m.day),
                    priority=m.priority,
                    type=m.type,
                    dog_id=litter.dam_id,
                    related_id=litter.id,
                )
            )
        if age <= rc.weighing_until_day and age % rc.weighing_every_days == 0:
            reminders.append(
                ReminderRecord(
                    id=f"weight-{litter.id}-{age}",
                    title=f"Weigh {litter.name} Puppies",
                    description=f"Regular weight tracking at {_plural(age)} old",
                    due_date=today,
                    priority=ReminderPriority.medium.value,
                    type="weighing",
                    dog_id=litter.dam_id,
                    related_id=litter.id,
                )
            )
    return reminders


def generate_pregnancy_reminders(
    pregnancies: list[PregnancyRecord],
    dog_names: dict[UUID, str],
    today: date,
    config: BreedingConfig | None = None,
) -> list[ReminderRecord]:
    """Due-date reminders for active pregnancies (7 days before to 3 after)."""
    window = (config or get_breeding_config()).reminders.pregnancy_due
    reminders: list[ReminderRecord] = []
    for p in pregnancies:
        if not p.is_active or p.id is None:
            continue
        days_until = (p.expected_due_date - today).days
        if not _window_contains(days_until, window.days_before, window.days_after):
            continue
        name = dog_names.get(p.female_dog_id, "Unknown") if p.female_dog_id else "Unknown"
        if days_until == 0:
            description = f"{name} is due today"
        elif days_until > 0:
            description = f"{name} is due in {_plural(days_until)}"
        else:
            description = f"{name} is {_plural(-days_until)} past the due date"
        reminders.append(
            ReminderRecord(
                id=f"pregnancy-due-{p.id}",
                title=f"{name}'s Due Date",
                description=description,
                due_date=p.expected_due_date,
                priority=ReminderPriority.high.value,
                type="due-date",
                dog_id=p.female_dog_id,
                related_id=p.id,
            )
        )
    return reminders


def generate_system_reminders(
    *,
    dogs: list[DogRecord],
    cycles_by_dog: dict[UUID, list[HeatCycleRecord]],
    litters: list[LitterRecord],
    planned_litters: list[PlannedLitterRecord],
    pregnancies: list[PregnancyRecord],
    today: date,
    config: BreedingConfig | None = None,
) -> list[ReminderRecord]:
    """Run every generator and concatenate the results."""
    cfg = config or get_breeding_config()
    names = {d.id: d.name for d in dogs}
    reminders = (
        generate_birthday_reminders(dogs, today, cfg)
        + generate_vaccination_reminders(dogs, today, cfg)
        + generate_heat_reminders(dogs, cycles_by_dog, today, cfg)
        + generate_planned_heat_reminders(planned_litters, today, cfg)
        + generate_litter_reminders(litters, today, cfg)
        + generate_pregnancy_reminders(pregnancies, names, today, cfg)
    )
    logger.debug("Generated %d system reminders for %s", len(reminders), today)
    return reminders
