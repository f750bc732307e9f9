# SPDX-License-Identifier: BSD-2-Clause
# Copyright (c) deftio llc

"""Quickstart: Pull an image while watching engine events.

Starts a background event monitor, pulls an image with a progress sink,
then stops the monitor and prints what it saw. Shows the
start -> stream -> cancel -> read loop.

Usage:
    python examples/quickstart_pull.py [IMAGE]
"""

import sys

import dockline
from dockline.parameters import ContainerEventsParameters, ImagesPullParameters


def show_progress(message: dockline.ProgressMessage) -> None:
    if message.is_error:
        print(f"  error: {message.error}")
    elif message.id:
        print(f"  {message.id}: {message.status} {message.progress}")
    else:
        print(f"  {message.status}")


def main() -> None:
    image = sys.argv[1] if len(sys.argv) > 1 else "alpine"

    with dockline.EngineClient() as client:
        print(f"Engine at {client.socket_path}")
        events = client.start_events(ContainerEventsParameters(filters={"type": {"image": True}}))

        print(f"Pulling {image} ...")
        outcome = client.pull_image(ImagesPullParameters(image=image, tag="latest"), show_progress)
        print(f"Pull {outcome.value}.")

        events.cancel()
        events.wait(timeout=5)
        for event in events.read():
            print(f"event: {event.type} {event.action} {event.id}")


if __name__ == "__main__":
    main()
