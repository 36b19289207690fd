CONTRACT_VERSION = "1.0.0"

COMMAND_INTENTS = (
    "start_duel",
    "start_encounter",
    "submit_action",
    "forfeit",
)

QUERY_INTENTS = (
    "query_state",
)

CONTRACT_DTO_TYPES = (
    "CommandResult",
    "BattleSnapshotView",
    "SideView",
)

REJECT_REASONS = (
    "invalid-action",
    "not-owned",
    "cap-exceeded",
    "special-already-used",
    "already-queued",
    "stunned",
    "not-participant",
    "no-session",
    "session-exists",
    "unknown-entity",
)
