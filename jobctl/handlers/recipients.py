from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from ..context import JobContext
from ..db import DataStoreError
from ..telemetry import get_logger

log = get_logger(__name__)

FAVORITES_DIGEST_PREF = "email_favorites_digest_enabled"
SELLER_WEEKLY_PREF = "email_seller_weekly_enabled"


@dataclass
class Recipient:
    id: str
    email: str
    display_name: Optional[str] = None


async def resolve_recipients(
    ctx: JobContext, account_ids: Iterable[str], preference: str
) -> Dict[str, Recipient]:
    """Accounts that have an email address and have opted in to `preference`.

    If the preference lookup itself fails, everyone is kept (fail open): an
    infrastructure hiccup must not silently suppress notifications. Failure to
    list accounts is not caught here.
    """
    wanted = set(account_ids)
    if not wanted:
        return {}

    emails = {
        account.id: account.email
        for account in await ctx.accounts.list_accounts()
        if account.id in wanted and account.email
    }
    for missing in sorted(wanted - emails.keys()):
        log.warning("recipient_without_email", account_id=missing)

    names: Dict[str, Optional[str]] = {}
    try:
        profiles = await ctx.db.select(
            "profiles", ("id", "display_name", preference), in_={"id": sorted(wanted)}
        )
    except DataStoreError as e:
        log.warning("preference_query_failed", preference=preference, error=str(e), fail_open=True)
        enabled = set(wanted)
    else:
        enabled = {p["id"] for p in profiles if p[preference]}
        names = {p["id"]: p["display_name"] for p in profiles}

    return {
        account_id: Recipient(id=account_id, email=emails[account_id], display_name=names.get(account_id))
        for account_id in sorted(wanted)
        if account_id in enabled and account_id in emails
    }
