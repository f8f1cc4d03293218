"""Known collections: which event a write raises and what may be read."""

ADMINS = "admins"
JOIN_MATCHES = "joinmatches"

# Writes into these collections broadcast the mapped event; anything else is
# stored silently.
COLLECTION_EVENTS = {
    "tournament": "TOURNAMENT_ADDED",
    "upcomingtournament": "TOURNAMENT_ADDED",
    "upcomingscrim": "UPCOMING_SCRIM_ADDED",
    "tournamentdetail": "DETAIL_UPDATED",
    "leaderboard": "LEADERBOARD_UPDATED",
    "winner": "WINNER_UPDATED",
    JOIN_MATCHES: "JOIN_MATCH",
    "passedmatch": "PASSED_MATCH_ADDED",
}

READABLE_COLLECTIONS = frozenset([
    "tournament",
    "upcomingscrim",
    "upcomingtournament",
    "leaderboard",
    "winner",
    "tournamentdetail",
    JOIN_MATCHES,
    "passedmatch",
    ADMINS,
    "mvpplayer",
    "rank",
    "topplayer",
])

# Human-readable lookup field per collection, distinct from the Mongo _id.
BUSINESS_KEYS = {
    "tournamentdetail": "tournamentId",
    "passedmatch": "tournamentId",
}

# Only reachable through their dedicated endpoints.
RESERVED_COLLECTIONS = frozenset([ADMINS])

# Fields never handed back on reads.
HIDDEN_FIELDS = {
    ADMINS: ("password",),
}


def event_for(collection: str):
    return COLLECTION_EVENTS.get(collection)
