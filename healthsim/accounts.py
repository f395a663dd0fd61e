from __future__ import annotations

import logging
from typing import Sequence

from eth_account import Account

from .directory import Actor

LOGGER = logging.getLogger("healthsim.accounts")


def generate_actor(label: str = "") -> Actor:
    account = Account.create()
    return Actor(address=account.address, private_key=account.key.hex(), label=label)


def build_population(node_accounts: Sequence[str], size: int) -> list[Actor]:
    """Deployer first, then node-managed accounts, then freshly generated keys."""
    if size < 1:
        raise ValueError("actor population must contain at least one actor")

    actors: list[Actor] = []
    for index, address in enumerate(node_accounts[:size]):
        actors.append(Actor(address=address, label="deployer" if index == 0 else "node"))

    while len(actors) < size:
        actors.append(generate_actor(label="deployer" if not actors else "generated"))

    LOGGER.info("Using deployer account: %s", actors[0].address)
    LOGGER.info(
        "Using %d accounts for testing (%d node-managed, %d generated)",
        len(actors),
        sum(1 for actor in actors if actor.private_key is None),
        sum(1 for actor in actors if actor.private_key is not None),
    )
    return actors
