"""
Chat command registration and dispatch.

``CommandRegistry`` maps command names to async handlers.  Inbound
messages whose text starts with the configured prefix are split into a
command and its arguments and routed to the matching handler; anything
else is ignored.  A handler that raises is logged and answered with a
generic error reply so one bad command never stops the dispatch loop.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


# =============================================================================
# MESSAGE MODEL
# =============================================================================


def extract_text(message: Dict[str, Any]) -> str:
    """Return the user-visible text of a raw WhatsApp message dict."""
    if not message:
        return ""
    if message.get("conversation"):
        return message["conversation"]
    if (message.get("extendedTextMessage") or {}).get("text"):
        return message["extendedTextMessage"]["text"]
    for key in ("imageMessage", "videoMessage"):
        if (message.get(key) or {}).get("caption"):
            return message[key]["caption"]
    return ""


@dataclass
class MessageInfo:
    """An inbound chat message as seen by command handlers.

    Attributes:
        chat_jid: Chat the message arrived in; replies go here.
        text: Message text (or media caption).
        participant_jid: Author in group chats, sender in direct chats.
        from_me: Sent by the bot's own account.
        message: Raw WhatsApp message content.
        command: Parsed command name, set by the registry.
        args: Whitespace-separated arguments after the command.
    """

    chat_jid: str
    text: str = ""
    participant_jid: Optional[str] = None
    from_me: bool = False
    message: Dict[str, Any] = field(default_factory=dict)
    command: Optional[str] = None
    args: List[str] = field(default_factory=list)

    @property
    def quoted_message(self) -> Optional[Dict[str, Any]]:
        """The message this one replies to, if any."""
        context = (self.message.get("extendedTextMessage") or {}).get("contextInfo") or {}
        return context.get("quotedMessage")

    @property
    def sender_name(self) -> str:
        if not self.participant_jid:
            return "Unknown"
        return self.participant_jid.split("@")[0] or "Unknown"

    @classmethod
    def from_update(cls, update: Dict[str, Any]) -> "MessageInfo":
        """Build from a gateway update (``{"key": {...}, "message": {...}}``)."""
        key = update.get("key") or {}
        message = update.get("message") or {}
        chat_jid = key.get("remoteJid", "")
        return cls(
            chat_jid=chat_jid,
            text=extract_text(message),
            participant_jid=key.get("participant") or chat_jid,
            from_me=bool(key.get("fromMe")),
            message=message,
        )


def is_owner(participant_jid: Optional[str], owner_jid: Optional[str]) -> bool:
    """Whether *participant_jid* is one of the owner's JIDs.

    Matches ``<number>@s.whatsapp.net``, multi-device ``<number>:<device>@...``
    and linked-id ``<number>@lid`` forms.
    """
    if not participant_jid or not owner_jid:
        return False
    number = owner_jid.split("@")[0]
    if not number:
        return False
    return (
        participant_jid == owner_jid
        or participant_jid.startswith(f"{number}:")
        or participant_jid == f"{number}@lid"
    )


# =============================================================================
# REGISTRY
# =============================================================================

CommandHandler = Callable[[MessageInfo], Awaitable[None]]


@dataclass
class CommandSpec:
    """A registered command with its help metadata."""

    name: str
    handler: CommandHandler
    description: str = ""
    usage: str = ""
    category: str = "general"
    plugin: str = ""
    owner_only: bool = False


class CommandRegistry:
    """Routes prefixed chat commands to registered handlers.

    Args:
        prefix: Command prefix, e.g. ``"."``.
        replier: Object with an async ``send_text(jid, text)`` method used
            for the generic error reply.
        owner_jid: Owner's JID. ``owner_only`` commands run only for the
            owner or for messages sent by the bot account itself.
    """

    def __init__(
        self,
        prefix: str = ".",
        replier: Any = None,
        owner_jid: Optional[str] = None,
    ) -> None:
        self.prefix = prefix
        self.replier = replier
        self.owner_jid = owner_jid
        self._commands: Dict[str, CommandSpec] = {}

    @property
    def commands(self) -> Dict[str, CommandSpec]:
        return dict(self._commands)

    def get(self, name: str) -> Optional[CommandSpec]:
        return self._commands.get(name.lower())

    def register_command(
        self,
        name: str,
        handler: CommandHandler,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CommandSpec:
        """Register *handler* under *name*; a later registration replaces it."""
        metadata = metadata or {}
        key = name.lower()
        if key in self._commands:
            logger.warning("[COMMANDS] Command '%s' re-registered, replacing handler", key)

        spec = CommandSpec(
            name=key,
            handler=handler,
            description=metadata.get("description", ""),
            usage=metadata.get("usage", ""),
            category=metadata.get("category", "general"),
            plugin=metadata.get("plugin", ""),
            owner_only=bool(metadata.get("owner_only", False)),
        )
        self._commands[key] = spec
        logger.debug("[COMMANDS] Registered %s%s", self.prefix, key)
        return spec

    async def dispatch(self, message: MessageInfo) -> bool:
        """Run the handler for *message* if it is a known command.

        Returns:
            ``True`` if a handler was invoked.
        """
        text = (message.text or "").strip()
        if not text.startswith(self.prefix):
            return False

        parts = text[len(self.prefix):].split()
        if not parts:
            return False

        spec = self.get(parts[0])
        if spec is None:
            logger.debug("[COMMANDS] Unknown command '%s'", parts[0])
            return False

        if not self.is_allowed(spec, message):
            logger.warning(
                "[COMMANDS] Permission denied for %s to use %s%s",
                message.participant_jid,
                self.prefix,
                spec.name,
            )
            return False

        message.command = spec.name
        message.args = parts[1:]

        try:
            await spec.handler(message)
        except Exception as exc:
            logger.exception("[COMMANDS] Command %s%s failed", self.prefix, spec.name)
            await self._reply_error(message, f"❌ Error executing {self.prefix}{spec.name}: {exc}")
        return True

    def is_allowed(self, spec: CommandSpec, message: MessageInfo) -> bool:
        """Owner-only commands need ``fromMe`` or the owner as author."""
        if not spec.owner_only:
            return True
        return message.from_me or is_owner(message.participant_jid, self.owner_jid)

    async def _reply_error(self, message: MessageInfo, text: str) -> None:
        if self.replier is None:
            return
        try:
            await self.replier.send_text(message.chat_jid, text)
        except Exception:
            logger.warning("[COMMANDS] Could not send error reply to %s", message.chat_jid, exc_info=True)


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "extract_text",
    "MessageInfo",
    "is_owner",
    "CommandHandler",
    "CommandSpec",
    "CommandRegistry",
]
