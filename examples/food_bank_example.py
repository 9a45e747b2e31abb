#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Food Bank Example

Demonstrates a menu-driven assistant built from sequence, prompt and
component dialogs, driven turn by turn through the TurnDriver with the
in-memory stack store.

Run from project root:
    python examples/food_bank_example.py
"""
import asyncio
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from turnflow.config import Settings, validate_or_warn
from turnflow.core.engine import (
    ComponentDialog,
    DialogRegistry,
    SequenceDialog,
    TurnDriver,
    ValidationFailed,
    choice_prompt,
    text_prompt,
)
from turnflow.infra.logging_config import setup_logging
from turnflow.infra.memory_store import InMemoryStackStore
from turnflow.infra.metrics import get_metrics_collector, setup_metrics


# ---------------------------------------------------------------------------
# Menu
# ---------------------------------------------------------------------------

def show_menu(dc, values, result):
    dc.prompt("How can we help you today?", choices=["Donate", "Find", "Volunteer"])


def route(dc, values, result):
    dc.begin({"Donate": "donate", "Find": "find_food", "Volunteer": "volunteer"}[result])


def restart(dc, values, result):
    dc.replace("menu")


# ---------------------------------------------------------------------------
# Find food / donate
# ---------------------------------------------------------------------------

def ask_zip(dc, values, result):
    dc.begin("zip_code")


def list_pantries(dc, values, result):
    dc.send(f"Pantries near {result}: Westside Pantry (Mon-Fri), St. Mark's Kitchen (Sat).")
    dc.next()


def donate_info(dc, values, result):
    dc.send("Thank you! Drop-offs are accepted weekdays 9-5 at 12 Main St.")
    dc.end()


def zip_code(raw):
    text = str(raw or "").strip()
    if len(text) != 5 or not text.isdigit():
        raise ValidationFailed("five digits expected", raw=raw)
    return text


# ---------------------------------------------------------------------------
# Volunteer sign-up (component with its own dialog set)
# ---------------------------------------------------------------------------

def ask_name(dc, values, result):
    dc.prompt("What's your name?")


def ask_shift(dc, values, result):
    values["name"] = result.strip()
    dc.begin("shift")


def confirm(dc, values, result):
    dc.send(f"See you on {result}, {values['name']}!")
    dc.end({"name": values["name"], "shift": result})


def build_registry() -> DialogRegistry:
    signup = ComponentDialog(
        "volunteer",
        dialogs=[
            SequenceDialog("collect", steps=[ask_name, ask_shift, confirm]),
            choice_prompt("shift", "Which day works for you?", ["Saturday", "Sunday"],
                          retry_text="Please pick Saturday or Sunday."),
        ],
    )
    return DialogRegistry([
        SequenceDialog("menu", steps=[show_menu, route, restart]),
        SequenceDialog("find_food", steps=[ask_zip, list_pantries]),
        SequenceDialog("donate", steps=[donate_info]),
        text_prompt("zip_code", "What's your ZIP code?", retry_text="Please enter a 5-digit ZIP code.",
                    validator=zip_code),
        signup,
    ])


class ConsoleRenderer:
    async def render(self, conversation_id, activity):
        for line in (activity.text or str(activity.payload)).splitlines():
            print(f"Bot:  {line}")


async def demo_conversation():
    print("\n" + "=" * 60)
    print("FOOD BANK DEMO")
    print("=" * 60 + "\n")

    settings = Settings(_env_file=None, root_dialog="menu", prompt_max_retries=3)
    for warning in validate_or_warn(settings):
        print(f"Config warning: {warning}")
    setup_metrics(settings.enable_metrics)
    store = InMemoryStackStore()
    driver = TurnDriver(registry=build_registry(), store=store, renderer=ConsoleRenderer(), settings=settings)

    conversation = [
        ("hi", "Idle conversation starts the menu"),
        ("find", "Choice matched case-insensitively"),
        ("1000", "Invalid ZIP is re-prompted"),
        ("10001", "Valid ZIP finishes find_food, menu loops"),
        ("3", "Choice picked by number"),
        ("Dana", "Component dialog collects a name"),
        ("sunday", "Sign-up finishes, menu loops"),
    ]

    for turn_no, (user_input, description) in enumerate(conversation, start=1):
        print(f"User: {user_input}  ({description})")
        result = await driver.on_turn("demo_user_1", user_input, turn_id=f"turn-{turn_no}")
        stack = await driver.get_stack("demo_user_1")
        print(f"      Status: {result.status.value}, Stack: {stack.names()}\n")

    print("Replaying the last turn id:")
    replay = await driver.on_turn("demo_user_1", "sunday", turn_id=f"turn-{len(conversation)}")
    print(f"      Duplicate: {replay.duplicate}, Activities: {len(replay.activities)}\n")


def demo_metrics():
    print("=" * 60)
    print("METRICS")
    print("=" * 60 + "\n")
    for name, value in sorted(get_metrics_collector().get_metrics()["counters"].items()):
        print(f"  {name}: {value}")


if __name__ == "__main__":
    setup_logging("WARNING")
    asyncio.run(demo_conversation())
    demo_metrics()
