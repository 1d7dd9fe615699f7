"""
Platform insights counters.

One document keyed "global" holds total_users and total_publications. The
counters only ever move up: an upsert takes the field-wise max of what is
stored and what is submitted, so reports can arrive in any order, or twice,
and the stored values still converge on the largest seen.

All raised counters go out in one conditional update ($max, matched only
while some stored value is lower), so concurrent writers cannot lower a
counter and readers never see half a merge.
"""
import logging
from datetime import datetime, timezone

from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from validation import to_number_or_zero

logger = logging.getLogger(__name__)

INSIGHTS_KEY = "global"
SOURCE_INIT = "init"
SOURCE_UPSERT = "client-upsert"


def _ensure_document(insights: Collection) -> dict:
    now = datetime.now(timezone.utc)
    try:
        insights.update_one(
            {"key": INSIGHTS_KEY},
            {
                "$setOnInsert": {
                    "total_users": 0,
                    "total_publications": 0,
                    "updatedAt": now,
                    "source": SOURCE_INIT,
                }
            },
            upsert=True,
        )
    except DuplicateKeyError:
        # Lost the creation race to another request; the document exists now.
        pass
    return insights.find_one({"key": INSIGHTS_KEY})


def snapshot(doc: dict) -> dict:
    return {
        "total_users": to_number_or_zero(doc.get("total_users")),
        "total_publications": to_number_or_zero(doc.get("total_publications")),
        "updated_at": doc.get("updatedAt"),
    }


def read_insights(insights: Collection) -> dict:
    """Return the current counters, creating the zeroed document on first use."""
    return snapshot(_ensure_document(insights))


def upsert_insights(insights: Collection, total_users, total_publications):
    """Raise each counter to the submitted value if it is higher.

    Inputs are coerced with to_number_or_zero, never rejected. Returns
    (state, updated) where updated says whether any write happened.
    """
    incoming = {
        "total_users": to_number_or_zero(total_users),
        "total_publications": to_number_or_zero(total_publications),
    }
    _ensure_document(insights)

    raised = {field: value for field, value in incoming.items() if value > 0}
    updated = False
    if raised:
        # One write: match only while some counter is still below its incoming
        # value, and let $max keep every counter from moving down.
        result = insights.update_one(
            {
                "key": INSIGHTS_KEY,
                "$or": [
                    cond
                    for field, value in raised.items()
                    for cond in ({field: {"$lt": value}}, {field: {"$exists": False}})
                ],
            },
            {
                "$max": raised,
                "$set": {"updatedAt": datetime.now(timezone.utc), "source": SOURCE_UPSERT},
            },
        )
        updated = bool(result.modified_count)

    state = snapshot(insights.find_one({"key": INSIGHTS_KEY}))
    if updated:
        logger.info(
            "Platform insights now users=%s publications=%s",
            state["total_users"],
            state["total_publications"],
        )
    return state, updated
