"""Deterministic agent used by the demo and for wiring checks without a model."""
from __future__ import annotations

import asyncio
import random

from devcrew.agents.base import Agent


class EchoAgent(Agent):
    """Agent that echoes the request it was given.

    ``metadata["latency"]`` on its config sets a fixed delay; otherwise a short
    random delay simulates work.
    """

    async def generate(self, prompt: str) -> str:
        latency = self.config.metadata.get("latency")
        await asyncio.sleep(latency if latency is not None else random.uniform(0.01, 0.05))
        request = prompt.rsplit("Request: ", 1)[-1]
        return f"{self.name} heard {request}"
