from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from html import escape
from urllib.parse import urlencode

DISCORD_OAUTH_SCOPES = "identify email guilds.join"


def support_contact(*, support_email: str, support_discord_id: str, support_discord_name: str) -> str:
    if support_discord_id:
        return f"Contact <@{support_discord_id}> or email {support_email}"
    return f"Contact {support_discord_name} or email {support_email}"


def build_oauth_authorize_url(
    *,
    authorize_url: str,
    client_id: str,
    redirect_uri: str,
    state: str,
) -> str:
    query = urlencode(
        {
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": DISCORD_OAUTH_SCOPES,
            "state": state,
        }
    )
    return f"{authorize_url}?{query}"


def invite_email_subject() -> str:
    return "Welcome! Join Our Discord Community"


def invite_email_text(*, invite_link: str, organization_name: str) -> str:
    return (
        f"Welcome to the {organization_name} mentorship program!\n\n"
        "Thank you for your purchase. Join our Discord server to get started:\n"
        f"{invite_link}\n\n"
        "The link is personal and can be used once. See you in Discord!"
    )


def invite_email_html(*, invite_link: str, organization_name: str) -> str:
    link = escape(invite_link, quote=True)
    return (
        f"<h1>Welcome to the {escape(organization_name)} mentorship program!</h1>"
        "<p>Thank you for your purchase. We're excited to have you join our community!</p>"
        "<p>Click the button below to join our Discord server and get started:</p>"
        f'<a href="{link}" style="display:inline-block;padding:12px 24px;background-color:#5865F2;'
        'color:white;text-decoration:none;border-radius:5px;margin:20px 0;">Join Discord Server</a>'
        "<p>If the button doesn't work, copy and paste this link into your browser:</p>"
        f"<p>{link}</p>"
        "<p>See you in Discord!</p>"
    )


def sessions_added_dm(*, sessions_added: int, sessions_remaining: int, instructor_name: str) -> str:
    plural = "session" if sessions_added == 1 else "sessions"
    return (
        f"\U0001F389 **{sessions_added} {plural} added!**\n\n"
        f"Your mentorship with **{instructor_name}** now has "
        f"**{sessions_remaining}** session(s) remaining."
    )


def welcome_dm(*, instructor_name: str, sessions_remaining: int, organization_name: str, support: str) -> str:
    return (
        f"\U0001F44B **Welcome to {organization_name}!**\n\n"
        f"You're now connected with **{instructor_name}** and have "
        f"**{sessions_remaining}** session(s) available.\n\n"
        f"_Questions? {support}_"
    )


def instructor_new_mentee_dm(*, mentee_label: str, sessions_remaining: int) -> str:
    return (
        "\U0001F393 **New mentee joined!**\n\n"
        f"{mentee_label} linked their Discord account and has "
        f"**{sessions_remaining}** session(s) with you."
    )


def goodbye_dm(*, reason: str, organization_name: str, support: str) -> str:
    return (
        f"\U0001F44B **Thank you for being part of {organization_name}!**\n\n"
        f"Your 1-on-1 mentorship has ended: {reason}\n\n"
        "We hope you've had a valuable experience. "
        "You're always welcome to rejoin us in the future.\n\n"
        f"_Questions? {support}_"
    )


def admin_purchase_email_subject(*, mentee_email: str) -> str:
    return f"New Purchase: {mentee_email}"


def admin_purchase_email_text(
    *,
    mentee_email: str,
    instructor_name: str,
    offer_name: str,
    amount: Decimal | None,
    currency: str | None,
    subject_kind: str,
    purchased_at: datetime,
) -> str:
    lines = [
        "NEW PURCHASE",
        "",
        f"Student: {mentee_email}",
        f"Instructor: {instructor_name}",
        f"Offer: {offer_name}",
    ]
    if amount is not None:
        lines.append(f"Price: {amount} {currency or ''}".rstrip())
    lines.append(f"Time: {purchased_at.isoformat()}")
    lines.append("")
    if subject_kind == "new":
        lines.append("Invite email has been sent. Waiting for the student to join Discord.")
    else:
        lines.append("Returning student: sessions were added to the existing mentorship.")
    return "\n".join(lines)


def oauth_page(*, title: str, message: str) -> str:
    return (
        "<html><body style=\"font-family: Arial, sans-serif; text-align: center; padding: 50px;\">"
        f"<h1>{escape(title)}</h1>"
        f"<p>{escape(message)}</p>"
        "</body></html>"
    )
