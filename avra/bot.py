"""Entry point for the AVRA Discord bot."""

from __future__ import annotations

import asyncio
import logging

import discord
from discord.ext import commands

from .config import BotConfig
from .session import GameSession
from .storage import DataStore

log = logging.getLogger(__name__)


class AvraBot(commands.Bot):
    def __init__(self, config: BotConfig):
        intents = discord.Intents.default()
        super().__init__(command_prefix="!", intents=intents)
        self.config = config
        self.store = DataStore()
        self.session = GameSession(self.store, config=config.engine)
        self._synced = False

    async def setup_hook(self) -> None:
        loaded = self.session.load_all()
        log.info("Loaded %d stored account(s)", loaded)
        self.session.start_lootbox_cycle()
        await self.load_extension("avra.cogs.aura")

    async def on_ready(self) -> None:
        if not self._synced:
            await self.tree.sync()
            self._synced = True
            log.info("Application commands synced")
        if self.user:
            log.info("Connected as %s (%s)", self.user, self.user.id)

    async def close(self) -> None:
        self.session.dispose()
        await super().close()


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    config = BotConfig.from_env()
    bot = AvraBot(config)
    async with bot:
        await bot.start(config.token)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
