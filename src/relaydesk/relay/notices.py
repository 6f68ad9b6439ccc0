"""Text of the notices the relay posts to operators and end users."""

from collections.abc import Iterable
from typing import Optional

from relaydesk.platforms.models import OrganizationalUnit, PlatformCapabilities
from relaydesk.relay.state import ForwardRecord

NO_TEXT = "No text content"


def unit_label(username: str, user_id: str) -> str:
    """Name of the unit created for a user; the trailing id allows auto-linking."""
    return f"💬 {username} ({user_id})"


def forward_payload(username: str, text: str, in_unit: bool) -> str:
    """Forwarded copy of a user message; labeled when posted to the shared surface."""
    if in_unit:
        return text
    return f"{username}: {text}"


def setup_complete(caps: PlatformCapabilities, use_units: bool) -> str:
    p = caps.command_prefix
    unit = caps.unit_term
    lines = [
        "🤖 Bot Setup Complete!",
        "",
        f"✅ Your bot is now connected to this {caps.surface_term}"
        + (f" with {unit}s" if use_units else ""),
        "📱 You'll receive forwarded messages here",
    ]
    if use_units:
        lines += [
            f"💬 Just type normally in each user's {unit}",
            "",
            f"🧵 {unit.capitalize()} Mode Enabled:",
            f"• Each user gets their own {unit}",
            "• Just type messages normally - no need to reply!",
        ]
    else:
        lines.append("💬 Reply directly to forwarded messages")
    lines += [
        "",
        "Commands:",
        f"{p}test - Test connection",
        f"{p}help - Show help",
        f"{p}info [userId] - Get user details",
    ]
    if use_units:
        lines.append(f"{p}{unit}s - List all user {unit}s")
    return "\n".join(lines)


def self_setup(description: str, caps: PlatformCapabilities) -> str:
    """Reply to the message that designated the management surface."""
    return (
        "🚀 Setup Complete!\n\n"
        f"This {caps.surface_term} is now the management {caps.surface_term}: {description}\n\n"
        "It stays registered until the relay stops. To keep it:\n"
        "1. Add the ids above to your relaydesk configuration\n"
        "2. Restart relaydesk\n"
        f"3. Send {caps.command_prefix}test to verify the connection"
    )


def unit_welcome(username: str, user_id: str, caps: PlatformCapabilities) -> str:
    unit = caps.unit_term
    return (
        "🎉 New conversation started\n\n"
        f"👤 User: {username}\n"
        f"🆔 User ID: {user_id}\n"
        f"🧵 This {unit} is dedicated to your conversation with this user.\n\n"
        f"💬 Just type your messages normally in this {unit} - they'll be sent automatically!"
    )


def unit_fallback(username: str, user_id: str, caps: PlatformCapabilities) -> str:
    """Posted to the shared surface when a unit cannot be created."""
    unit = caps.unit_term
    return (
        f"🧵 Manual {unit.capitalize()} Creation Needed\n\n"
        f"I couldn't create a {unit} for {username} due to missing permissions "
        f"or {unit} support.\n\n"
        "Quick Fix:\n"
        f"1. Create a new {unit} yourself\n"
        f'2. Name it: "{unit_label(username, user_id)}"\n'
        "3. I'll detect and use it for future messages!\n\n"
        f"Or link an existing one: {caps.command_prefix}link_{unit} {user_id} [{unit}Id]\n\n"
        f"📱 For now, messages from {username} will arrive here with a user label."
    )


def management_ok() -> str:
    return "✅ Management connection is working! Bot is ready to forward messages."


def management_help(caps: PlatformCapabilities, use_units: bool) -> str:
    p = caps.command_prefix
    unit = caps.unit_term
    lines = [f"🔧 Management {caps.surface_term.capitalize()} Commands:", ""]
    if use_units:
        lines += [
            f"🧵 {unit.capitalize()} Mode (ENABLED):",
            f"✨ Each user gets their own {unit}!",
            f"📝 Just type messages normally in each {unit}",
            "",
        ]
    forwarded_to = f"separate {unit}s" if use_units else f"this {caps.surface_term}"
    how_to_reply = (
        f"Type your message normally in their {unit}"
        if use_units
        else "Reply to the forwarded message"
    )
    lines += ["📱 Reply to users:"]
    if use_units:
        lines.append(f"✨ Simply type your message in the user's {unit}!")
    lines += [
        "📝 Reply directly to forwarded messages",
        f"📝 Legacy format: {caps.reply_sigil}[userId] your message here",
        "",
        "📋 Commands:",
        f"{p}test - Check if the bot can send messages",
        f"{p}help - Show this help",
        f"{p}info [userId] - Get details about a user",
        f"{p}{unit}s - List all user {unit}s",
        f"{p}link_{unit} [userId] [{unit}Id] - Link an existing {unit} to a user",
        "",
        "💡 How it works:",
        f"1. Users message your bot → forwarded to {forwarded_to}",
        f"2. {how_to_reply}",
        "3. Your message gets sent as the bot automatically!",
        "",
        "🤖 All conversations are logged.",
    ]
    return "\n".join(lines)


def user_info(record: ForwardRecord, caps: PlatformCapabilities) -> str:
    received = record.timestamp.strftime("%Y-%m-%d %H:%M:%S %Z")
    return (
        f"👤 User Info for ID: {record.user_id}\n\n"
        f"📝 Username: {record.username}\n"
        f'💬 Last Message: "{record.last_message}"\n'
        f"🕒 Received: {received}\n\n"
        f"💡 Reply with: {caps.reply_sigil}{record.user_id} your message here"
    )


def user_info_missing(user_id: str) -> str:
    return f"❌ No conversation found for user ID: {user_id}"


def units_list(
    entries: Iterable[tuple[str, str, OrganizationalUnit]], caps: PlatformCapabilities
) -> str:
    """List of (user id, username, unit) entries."""
    unit = caps.unit_term
    lines = [f"🧵 Active User {unit.capitalize()}s:", ""]
    for user_id, username, item in entries:
        lines.append(f"• {username} ({user_id}) - {unit.capitalize()} ID: {item.unit_id}")
    return "\n".join(lines)


def no_units(records: Iterable[ForwardRecord], caps: PlatformCapabilities) -> str:
    unit = caps.unit_term
    lines = [
        f"📝 No user {unit}s created yet",
        "",
        f"🔧 To create {unit}s manually:",
        f'1. Create a {unit} named "💬 Username (UserID)"',
        f"2. Send {caps.command_prefix}link_{unit} [userId] [{unit}Id] to connect it",
        "",
        f"📋 Recent users to create {unit}s for:",
    ]
    recent = [f"• {r.username} ({r.user_id})" for r in records]
    lines += recent or ["• No recent users"]
    return "\n".join(lines)


def unit_linked(user_id: str, unit_id: str, caps: PlatformCapabilities) -> str:
    unit = caps.unit_term
    return (
        f"✅ {unit.capitalize()} linked successfully!\n\n"
        f"👤 User ID: {user_id}\n"
        f"🧵 {unit.capitalize()} ID: {unit_id}\n\n"
        f"Future messages from this user will go to this {unit}!"
    )


def usage(command: str, arguments: str, caps: PlatformCapabilities) -> str:
    return f"Usage: {caps.command_prefix}{command} {arguments}"


def reply_sent(username: Optional[str], body: Optional[str] = None) -> str:
    name = username or "user"
    if body is not None:
        return f'✅ Reply sent to {name}: "{body}"'
    return f"✅ Reply sent to {name}!"


def send_failed(error: str) -> str:
    return f"❌ Failed to send message: {error}"


def user_welcome() -> str:
    return (
        "👋 Hello!\n\n"
        "This bot connects you with a human for conversation. Your messages will "
        "be forwarded to a real person who will respond personally.\n\n"
        "All conversations are logged.\n\n"
        "Start chatting! 💬"
    )


def user_about() -> str:
    return (
        "🔧 About this bot:\n\n"
        "• This bot connects you with a real person\n"
        "• Your messages are forwarded to a human who replies personally\n"
        "• All conversations are logged\n"
        "• Just chat naturally - someone will respond!\n\n"
        "Commands:\n"
        "/start - Welcome message\n"
        "/help - This help message\n\n"
        "Questions? Just ask! 😊"
    )


def mention_about() -> str:
    return (
        "👋 Hi! I'm a conversation relay bot.\n\n"
        "• A human reads messages and replies personally\n"
        "• All conversations are logged\n"
        "• Send me a DM to start chatting!\n\n"
        "💬 Just message me directly and someone will respond! 😊"
    )
