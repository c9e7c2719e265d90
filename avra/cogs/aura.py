from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

import discord
from discord import app_commands
from discord.ext import commands, tasks

from ..events import LOOTBOX_DESPAWN, LOOTBOX_SPAWN, LOOTBOX_WARNING
from ..models.outcome import Outcome, OutcomeType
from ..models.players import PlayerAccount
from ..session import GameSession, SessionDisposedError
from ..utils import format_number

log = logging.getLogger(__name__)

TITLES = {
    OutcomeType.SYSTEM: "AVRA",
    OutcomeType.CHAT: "Chat",
    OutcomeType.COMMAND: "Combo",
    OutcomeType.COMBO: "Combo!",
    OutcomeType.PROFILE: "Profile",
    OutcomeType.INVENTORY: "Inventory",
    OutcomeType.LEADERBOARD: "Leaderboard",
    OutcomeType.REWARD: "Reward",
    OutcomeType.ITEM: "Item",
    OutcomeType.GIFT: "Gift",
    OutcomeType.THEFT: "Theft",
    OutcomeType.DUEL: "Duel",
    OutcomeType.NAVIGATION: "Navigation",
    OutcomeType.QUEST_LIST: "Quests",
    OutcomeType.MINIGAME_LIST: "Minigames",
    OutcomeType.SHOP: "Shop",
}

MAX_NOTIFICATION_LINES = 5


def render_outcome(
    outcome: Outcome, account: Optional[PlayerAccount] = None, notes: Optional[List[str]] = None
) -> discord.Embed:
    if outcome.success:
        colour = discord.Colour.gold() if outcome.type is OutcomeType.COMBO else discord.Colour.blurple()
    else:
        colour = discord.Colour.red()
    embed = discord.Embed(
        title=TITLES.get(outcome.type, "AVRA"),
        description=outcome.message[:4000],
        colour=colour,
    )
    if outcome.aura_gain:
        embed.add_field(name="Gained", value=f"+{format_number(outcome.aura_gain)} Aura")
    if outcome.aura_loss:
        embed.add_field(name="Lost", value=f"-{format_number(outcome.aura_loss)} Aura")
    if notes:
        embed.add_field(name="Notifications", value="\n".join(notes)[:1024], inline=False)
    if account is not None:
        embed.set_footer(
            text=f"{account.name} | {format_number(account.aura)} Aura | Level {account.level}"
        )
    return embed


def drain_notifications(account: PlayerAccount, limit: int = MAX_NOTIFICATION_LINES) -> List[str]:
    notes: List[str] = []
    while len(notes) < limit:
        entry = account.pop_notification()
        if entry is None:
            break
        notes.append(f"• {entry.message}")
    return notes


class AuraCog(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self._announcements: List[str] = []
        self.session.events.subscribe(LOOTBOX_SPAWN, self._queue_announcement)
        self.session.events.subscribe(LOOTBOX_DESPAWN, self._queue_announcement)
        self.session.events.subscribe(LOOTBOX_WARNING, self._queue_announcement)

    @property
    def session(self) -> GameSession:
        return self.bot.session  # type: ignore[attr-defined, return-value]

    @property
    def announce_channel_id(self) -> Optional[int]:
        config = getattr(self.bot, "config", None)
        return getattr(config, "announce_channel_id", None)

    async def cog_load(self) -> None:
        config = getattr(self.bot, "config", None)
        interval = getattr(config, "tick_interval", 1.0)
        self.ticker.change_interval(seconds=interval)
        self.ticker.start()

    async def cog_unload(self) -> None:
        self.ticker.cancel()
        self.session.events.unsubscribe(LOOTBOX_SPAWN, self._queue_announcement)
        self.session.events.unsubscribe(LOOTBOX_DESPAWN, self._queue_announcement)
        self.session.events.unsubscribe(LOOTBOX_WARNING, self._queue_announcement)

    def _queue_announcement(self, kind: str, payload: Mapping[str, Any]) -> None:
        # Lootbox warnings reach detector owners through their notifications.
        if kind == LOOTBOX_WARNING:
            return
        message = payload.get("message")
        if message:
            self._announcements.append(str(message))

    @tasks.loop(seconds=1.0)
    async def ticker(self) -> None:
        self.session.tick()
        if not self._announcements:
            return
        pending, self._announcements = self._announcements, []
        channel_id = self.announce_channel_id
        if channel_id is None:
            return
        channel = self.bot.get_channel(channel_id)
        if not isinstance(channel, discord.abc.Messageable):
            log.warning("Announcement channel %s is unavailable", channel_id)
            return
        try:
            await channel.send("\n".join(pending))
        except discord.HTTPException:
            log.warning("Failed to post %d announcement(s)", len(pending), exc_info=True)

    @ticker.before_loop
    async def _before_ticker(self) -> None:
        await self.bot.wait_until_ready()

    @app_commands.command(name="aura", description="Send a command or message to AVRA")
    @app_commands.describe(text="A slash command such as /daily, or chat text")
    async def aura(self, interaction: discord.Interaction, text: str) -> None:
        user = interaction.user
        account = self.session.ensure_account(str(user.id), user.display_name)
        try:
            outcome = self.session.process(account.account_id, text)
        except SessionDisposedError:
            await interaction.response.send_message(
                "AVRA is shutting down. Try again shortly.", ephemeral=True
            )
            return
        if outcome is None:
            await interaction.response.send_message(
                "Type a command such as /help to get started.", ephemeral=True
            )
            return

        notes = drain_notifications(account)
        if notes:
            self.session.save_account(account)
        embed = render_outcome(outcome, account, notes)
        await interaction.response.send_message(embed=embed, ephemeral=not outcome.success)


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(AuraCog(bot))
